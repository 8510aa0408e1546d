"""API routes."""

from salary_engine.api.routes.audit import router as audit_router
from salary_engine.api.routes.health import router as health_router
from salary_engine.api.routes.ledger import router as ledger_router
from salary_engine.api.routes.pay_runs import router as pay_runs_router
from salary_engine.api.routes.rates import router as rates_router

__all__ = ["audit_router", "health_router", "ledger_router", "pay_runs_router", "rates_router"]
