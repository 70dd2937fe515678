from motor.motor_asyncio import AsyncIOMotorDatabase
from datetime import datetime
from typing import Optional, Dict, Any, List
import logging

from core.errors import ImmutableRecordError

logger = logging.getLogger(__name__)

# Append-only ledger entity types: never deleted, never rewritten
LEDGER_ENTITY_TYPES = {
    "CLIENT_INSTALLMENT",
    "EMPLOYEE_PAYMENT",
    "EXPENSE",
}

ENTITY_TYPE_BY_KIND = {
    "client_installment": "CLIENT_INSTALLMENT",
    "employee_payment": "EMPLOYEE_PAYMENT",
    "expense": "EXPENSE",
}


class AuditService:
    """Insert-only trail of who changed what, with before/after snapshots"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.audit_logs

    @staticmethod
    def guard_ledger_entity(entity_type: str, action: str):
        """
        Ledger transactions only ever get CREATE entries. A mistake is offset
        by a correction transaction, not by editing history.
        """
        if entity_type in LEDGER_ENTITY_TYPES and action in ("DELETE", "UPDATE"):
            raise ImmutableRecordError(
                f"{entity_type} records are append-only; {action} is not allowed. Record a correction instead.",
                {"entity_type": entity_type, "action": action}
            )

    async def log_action(
        self,
        module: str,
        entity_type: str,
        entity_id: str,
        action: str,
        actor_id: str,
        project_id: Optional[str] = None,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None
    ):
        """
        Append one audit entry.

        The ledger guard raises; a storage failure is logged and swallowed so
        the audited operation still succeeds.
        """
        self.guard_ledger_entity(entity_type, action)

        entry = {
            "module": module,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "action": action,
            "actor_id": actor_id,
            "project_id": project_id,
            "before": before,
            "after": after,
            "recorded_at": datetime.utcnow()
        }
        try:
            await self.collection.insert_one(entry)
            logger.info(f"[AUDIT] {action} {entity_type}:{entity_id} actor:{actor_id}")
        except Exception as e:
            logger.error(f"[AUDIT] Could not write {action} entry for {entity_type}:{entity_id}: {str(e)}")

    async def log_transaction(self, kind: str, project_id: str, record: Dict[str, Any], actor_id: str):
        """Audit one ledger append"""
        await self.log_action(
            module="FINANCE",
            entity_type=ENTITY_TYPE_BY_KIND[kind],
            entity_id=record["transaction_id"],
            action="CREATE",
            actor_id=actor_id,
            project_id=project_id,
            after=record
        )

    async def find_entries(self, limit: int = 100, **filters: Optional[str]) -> List[Dict[str, Any]]:
        """Newest first. Filters: project_id, entity_type, entity_id, actor_id, action."""
        query = {field: value for field, value in filters.items() if value}
        entries = await self.collection.find(
            query, sort=[("recorded_at", -1)], limit=limit
        ).to_list(length=None)
        return [dict(entry, _id=str(entry["_id"])) for entry in entries]
