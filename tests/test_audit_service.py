"""Tests for the append-only audit recorder."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from salary_engine.errors import ImmutableRecordError
from salary_engine.services.audit_service import AuditRecorder, to_jsonable

pytestmark = pytest.mark.asyncio


class TestToJsonable:
    def test_converts_nested_values(self):
        entity_id = uuid4()
        payload = {
            "amount": Decimal("4583.33"),
            "ids": (entity_id,),
            "as_of": date(2024, 4, 30),
            "nested": {"count": 3, "flag": None},
        }

        assert to_jsonable(payload) == {
            "amount": "4583.33",
            "ids": [str(entity_id)],
            "as_of": "2024-04-30",
            "nested": {"count": 3, "flag": None},
        }


class TestAuditRecorder:
    async def test_record_and_list_for_entity(self, session):
        audit = AuditRecorder(session)
        entity_id = uuid4()

        await audit.record("pay_run", entity_id, "created", "clerk", {"period": "2024-04"})
        await audit.record("pay_run", entity_id, "status_change:draft:processed", "clerk")
        await audit.record("pay_run", uuid4(), "created")

        events = await audit.list_for_entity("pay_run", entity_id)
        assert [e.action for e in events] == ["created", "status_change:draft:processed"]
        assert events[0].actor == "clerk"
        assert events[0].payload_json == {"period": "2024-04"}
        assert events[1].payload_json == {}
        assert events[0].created_at is not None

    async def test_list_events_filters_newest_first(self, session):
        audit = AuditRecorder(session)
        await audit.record("ledger_account", uuid4(), "loan_created")
        await audit.record("pay_run", uuid4(), "created")
        await audit.record("ledger_account", uuid4(), "recovery_committed")

        ledger_events = await audit.list_events(entity_type="ledger_account")
        assert [e.action for e in ledger_events] == ["recovery_committed", "loan_created"]

        created = await audit.list_events(action="created")
        assert [e.entity_type for e in created] == ["pay_run"]

        assert len(await audit.list_events(limit=2)) == 2

    async def test_update_is_rejected(self, session):
        event = await AuditRecorder(session).record("pay_run", uuid4(), "created")

        event.action = "tampered"
        with pytest.raises(ImmutableRecordError):
            await session.flush()

    async def test_delete_is_rejected(self, session):
        event = await AuditRecorder(session).record("pay_run", uuid4(), "created")

        await session.delete(event)
        with pytest.raises(ImmutableRecordError):
            await session.flush()
