import pytest

from audit_service import AuditService
from core.errors import ImmutableRecordError


class TestLedgerGuard:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action", ["DELETE", "UPDATE"])
    async def test_ledger_records_cannot_be_rewritten(self, db, mongo, action):
        with pytest.raises(ImmutableRecordError):
            await AuditService(db).log_action(
                module="FINANCE",
                entity_type="EMPLOYEE_PAYMENT",
                entity_id="t1",
                action=action,
                actor_id="u1"
            )
        assert mongo.audit_logs.count_documents({}) == 0

    @pytest.mark.asyncio
    async def test_project_delete_is_logged(self, db):
        service = AuditService(db)
        await service.log_action(
            module="PROJECTS",
            entity_type="PROJECT",
            entity_id="p1",
            action="DELETE",
            actor_id="u1",
            project_id="p1"
        )
        logs = await service.find_entries(project_id="p1")
        assert len(logs) == 1
        assert logs[0]["_id"]
