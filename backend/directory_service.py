from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from datetime import datetime
from typing import Any, Dict, Optional
import logging

from audit_service import AuditService
from core.atomic_numbering import AtomicSequenceAllocator
from core.entity_directory import EntityDirectory, parse_object_id
from core.errors import LedgerValidationError, NotFoundError
from core.serialization import serialize_doc
from models import ClientCreate, EmployeeCreate

logger = logging.getLogger(__name__)

ENTITY_LABELS = {
    "clients": ("CLIENT", "Client"),
    "employees": ("EMPLOYEE", "Employee"),
}


class DirectoryService:
    """Clients and employees: serial-numbered creation, lookup, soft delete and restore"""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        client: Optional[AsyncIOMotorClient] = None,
        allocator: Optional[AtomicSequenceAllocator] = None,
        directory: Optional[EntityDirectory] = None,
        audit_service: Optional[AuditService] = None
    ):
        self.db = db
        self.client = client
        self.allocator = allocator or AtomicSequenceAllocator(db)
        self.directory = directory or EntityDirectory(db)
        self.audit_service = audit_service or AuditService(db)

    # =========================================================================
    # CLIENTS
    # =========================================================================

    async def create_client(self, dto: ClientCreate, actor_id: str) -> Dict[str, Any]:
        document = dto.model_dump()
        document["email"] = document["email"].lower()
        return await self._create("clients", document, actor_id)

    async def get_client(self, client_id: str, include_inactive: bool = False) -> Dict[str, Any]:
        return serialize_doc(await self._get("clients", client_id, include_inactive))

    async def list_clients(self, skip: int = 0, limit: int = 50, include_inactive: bool = False) -> Dict[str, Any]:
        return await self._list("clients", skip, limit, include_inactive)

    async def deactivate_client(self, client_id: str, actor_id: str) -> Dict[str, Any]:
        return await self._set_active("clients", client_id, False, actor_id)

    async def restore_client(self, client_id: str, actor_id: str) -> Dict[str, Any]:
        return await self._set_active("clients", client_id, True, actor_id)

    # =========================================================================
    # EMPLOYEES
    # =========================================================================

    async def create_employee(self, dto: EmployeeCreate, actor_id: str) -> Dict[str, Any]:
        document = dto.model_dump()
        document["email"] = document["email"].lower()

        existing = await self.db.employees.find_one({"email": document["email"]})
        if existing:
            raise LedgerValidationError(
                "Employee with this email already exists",
                {"email": document["email"], "employee_id": str(existing["_id"])}
            )
        return await self._create("employees", document, actor_id)

    async def get_employee(self, employee_id: str, include_inactive: bool = False) -> Dict[str, Any]:
        return serialize_doc(await self._get("employees", employee_id, include_inactive))

    async def list_employees(self, skip: int = 0, limit: int = 50, include_inactive: bool = False) -> Dict[str, Any]:
        return await self._list("employees", skip, limit, include_inactive)

    async def deactivate_employee(self, employee_id: str, actor_id: str) -> Dict[str, Any]:
        return await self._set_active("employees", employee_id, False, actor_id)

    async def restore_employee(self, employee_id: str, actor_id: str) -> Dict[str, Any]:
        return await self._set_active("employees", employee_id, True, actor_id)

    # =========================================================================
    # SHARED
    # =========================================================================

    async def _create(self, collection: str, document: Dict[str, Any], actor_id: str) -> Dict[str, Any]:
        await self.directory.require_actor(actor_id)
        entity_type, label = ENTITY_LABELS[collection]

        now = datetime.utcnow()
        document.update({
            "is_active": True,
            "created_by": str(actor_id),
            "created_at": now,
            "updated_at": now,
        })
        await self.allocator.insert_with_serial(collection, document, client=self.client)
        logger.info(f"{label} created: {document['_id']} serial={document['serial_id']}")

        await self.audit_service.log_action(
            module="DIRECTORY",
            entity_type=entity_type,
            entity_id=str(document["_id"]),
            action="CREATE",
            actor_id=str(actor_id),
            after={"name": document.get("name"), "serial_id": document["serial_id"]}
        )
        return serialize_doc(document)

    async def _get(self, collection: str, entity_id: str, include_inactive: bool) -> Dict[str, Any]:
        _, label = ENTITY_LABELS[collection]
        oid = parse_object_id(entity_id)
        document = await self.db[collection].find_one({"_id": oid}) if oid is not None else None
        if not document or (not include_inactive and not document.get("is_active", False)):
            raise NotFoundError(f"{label} not found", {f"{collection[:-1]}_id": str(entity_id)})
        return document

    async def _list(self, collection: str, skip: int, limit: int, include_inactive: bool) -> Dict[str, Any]:
        query = {} if include_inactive else {"is_active": True}
        documents = await self.db[collection].find(
            query, sort=[("serial_id", 1)], skip=skip, limit=limit
        ).to_list(length=None)
        count = await self.db[collection].count_documents(query)
        return {"data": [serialize_doc(d) for d in documents], "count": count, "skip": skip, "limit": limit}

    async def _set_active(self, collection: str, entity_id: str, active: bool, actor_id: str) -> Dict[str, Any]:
        entity_type, label = ENTITY_LABELS[collection]
        document = await self._get(collection, entity_id, include_inactive=True)
        if document.get("is_active", False) == active:
            state = "active" if active else "inactive"
            raise LedgerValidationError(f"{label} is already {state}", {f"{collection[:-1]}_id": str(entity_id)})

        await self.db[collection].update_one(
            {"_id": document["_id"]},
            {"$set": {"is_active": active, "updated_at": datetime.utcnow()}}
        )
        await self.audit_service.log_action(
            module="DIRECTORY",
            entity_type=entity_type,
            entity_id=str(document["_id"]),
            action="RESTORE" if active else "DEACTIVATE",
            actor_id=str(actor_id)
        )
        verb = "restored" if active else "deactivated"
        return {"id": str(document["_id"]), "message": f"{label} {verb} successfully"}
