"""Monthly salary computation, deduction ledger and pay-run workflow."""

__version__ = "1.0.0"
