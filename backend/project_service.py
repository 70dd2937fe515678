from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from bson import ObjectId
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from audit_service import AuditService
from core.aggregation_engine import build_project_view
from core.atomic_numbering import AtomicSequenceAllocator
from core.entity_directory import EntityDirectory, build_project_query
from core.errors import LedgerValidationError, NotFoundError
from core.financial_precision import to_float
from models import EmployeeAssignment, ProjectCreate, ProjectUpdate

logger = logging.getLogger(__name__)


class ProjectService:
    """
    Project lifecycle: create (with serial id), read, list, metadata update,
    soft delete / restore and permanent delete.

    RULES:
    - Ledger logs and the deposit are never touched here
    - Serial id is allocated only after every reference has been validated
    - A roster employee with recorded payments cannot be removed
    - Permanent delete requires a prior soft delete
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        client: Optional[AsyncIOMotorClient] = None,
        allocator: Optional[AtomicSequenceAllocator] = None,
        directory: Optional[EntityDirectory] = None,
        audit_service: Optional[AuditService] = None
    ):
        self.db = db
        # Only set when the deployment supports multi-document transactions
        self.client = client
        self.allocator = allocator or AtomicSequenceAllocator(db)
        self.directory = directory or EntityDirectory(db)
        self.audit_service = audit_service or AuditService(db)

    @staticmethod
    def _assignments(
        employees: List[EmployeeAssignment],
        existing: Optional[List[Dict[str, Any]]] = None
    ) -> List[Dict[str, Any]]:
        previous = {str(a.get("employee_id")): a for a in existing or []}
        roster = []
        for assignment in employees:
            prior = previous.get(assignment.employee_id) or {}
            roster.append({
                "assignment_id": prior.get("assignment_id") or str(ObjectId()),
                "employee_id": assignment.employee_id,
                "role": assignment.role,
                "compensation": to_float(assignment.compensation),
                "hours_worked": assignment.hours_worked,
            })
        return roster

    async def _view(self, project: Dict[str, Any]) -> Dict[str, Any]:
        employees = await self.directory.employees_by_id(
            a.get("employee_id") for a in project.get("employees") or []
        )
        return build_project_view(project, employees)

    # =========================================================================
    # CREATE / READ
    # =========================================================================

    async def create_project(self, dto: ProjectCreate, actor_id: str) -> Dict[str, Any]:
        await self.directory.require_actor(actor_id)
        await self.directory.require_active_client(dto.client_id)
        await self.directory.require_active_employees(a.employee_id for a in dto.employees)
        await self.directory.require_services(dto.service_ids)

        now = datetime.utcnow()
        project = {
            "name": dto.name.strip(),
            "description": dto.description,
            "client_id": dto.client_id,
            "budget": to_float(dto.budget),
            "deposit": to_float(dto.deposit),
            "start_date": dto.start_date,
            "end_date": dto.end_date,
            "status": dto.status,
            "employees": self._assignments(dto.employees),
            "service_ids": list(dto.service_ids),
            "client_installments": [],
            "employee_payments": [],
            "expenses": [],
            "created_by": str(actor_id),
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }

        await self.allocator.insert_with_serial("projects", project, client=self.client)
        project_id = str(project["_id"])
        logger.info(f"Project created: {project_id} serial={project['serial_id']}")

        await self.audit_service.log_action(
            module="PROJECTS",
            entity_type="PROJECT",
            entity_id=project_id,
            action="CREATE",
            actor_id=str(actor_id),
            project_id=project_id,
            after={"name": project["name"], "serial_id": project["serial_id"], "budget": project["budget"]}
        )
        return await self._view(project)

    async def get_project(self, project_id: str, include_inactive: bool = False) -> Dict[str, Any]:
        project = await self.directory.get_project(project_id, include_inactive=include_inactive)
        return await self._view(project)

    async def list_projects(
        self,
        filters: Optional[Dict[str, Any]] = None,
        skip: int = 0,
        limit: int = 10,
        include_inactive: bool = False
    ) -> Dict[str, Any]:
        query = build_project_query(filters, active_only=not include_inactive)
        projects = await self.directory.find_projects(query, skip=skip, limit=limit)
        count = await self.db.projects.count_documents(query)

        employees = await self.directory.employees_by_id(
            a.get("employee_id") for p in projects for a in p.get("employees") or []
        )
        return {
            "data": [build_project_view(p, employees) for p in projects],
            "count": count,
            "skip": skip,
            "limit": limit,
        }

    # =========================================================================
    # UPDATE
    # =========================================================================

    async def update_project(self, project_id: str, dto: ProjectUpdate, actor_id: str) -> Dict[str, Any]:
        project = await self.directory.get_project(project_id)
        await self.directory.require_actor(actor_id)
        changes = dto.model_dump(exclude_unset=True)
        if not changes:
            raise LedgerValidationError("No fields to update", {"project_id": str(project_id)})

        update: Dict[str, Any] = {}
        guard: Dict[str, Any] = {"_id": project["_id"], "is_active": {"$ne": False}}

        if "client_id" in changes:
            await self.directory.require_active_client(dto.client_id)
            update["client_id"] = dto.client_id

        if "employees" in changes:
            new_ids = {a.employee_id for a in dto.employees or []}
            await self.directory.require_active_employees(new_ids)
            paid_ids = {str(p.get("employee_id")) for p in project.get("employee_payments") or []}
            removed = sorted(paid_ids - new_ids)
            if removed:
                raise LedgerValidationError(
                    "Cannot remove employees who already have recorded payments",
                    {"project_id": str(project_id), "employee_ids": removed}
                )
            update["employees"] = self._assignments(dto.employees or [], project.get("employees"))
            dropped = sorted(
                {str(a.get("employee_id")) for a in project.get("employees") or []} - new_ids
            )
            if dropped:
                # A payment appended after the check above must still block removal
                guard["employee_payments.employee_id"] = {"$nin": dropped}

        if "service_ids" in changes:
            await self.directory.require_services(dto.service_ids or [])
            update["service_ids"] = list(dto.service_ids or [])

        for field in ("name", "description", "start_date", "end_date", "status"):
            if field in changes:
                update[field] = changes[field]
        if "budget" in changes and dto.budget is not None:
            update["budget"] = to_float(dto.budget)

        start = update.get("start_date", project.get("start_date"))
        end = update.get("end_date", project.get("end_date"))
        if start and end and end < start:
            raise LedgerValidationError("end_date must not be before start_date", {"project_id": str(project_id)})

        update["updated_at"] = datetime.utcnow()
        updated = await self.db.projects.find_one_and_update(
            guard,
            {"$set": update},
            return_document=ReturnDocument.AFTER
        )
        if updated is None:
            current = await self.db.projects.find_one({"_id": project["_id"]})
            if not current or current.get("is_active") is False or "employees" not in changes:
                raise NotFoundError("Project not found", {"project_id": str(project_id)})
            paid_ids = {str(p.get("employee_id")) for p in current.get("employee_payments") or []}
            raise LedgerValidationError(
                "Cannot remove employees who already have recorded payments",
                {"project_id": str(project_id), "employee_ids": sorted(paid_ids - new_ids)}
            )

        await self.audit_service.log_action(
            module="PROJECTS",
            entity_type="PROJECT",
            entity_id=str(project["_id"]),
            action="UPDATE",
            actor_id=str(actor_id),
            project_id=str(project["_id"]),
            before={k: project.get(k) for k in update if k != "updated_at"},
            after={k: v for k, v in update.items() if k != "updated_at"}
        )
        return await self._view(updated)

    # =========================================================================
    # SOFT DELETE / RESTORE / PERMANENT DELETE
    # =========================================================================

    async def delete_project(self, project_id: str, actor_id: str) -> Dict[str, Any]:
        project = await self.directory.get_project(project_id)
        result = await self.db.projects.update_one(
            {"_id": project["_id"], "is_active": {"$ne": False}},
            {"$set": {"is_active": False, "updated_at": datetime.utcnow()}}
        )
        if result.modified_count == 0:
            raise NotFoundError("Project not found", {"project_id": str(project_id)})

        await self.audit_service.log_action(
            module="PROJECTS",
            entity_type="PROJECT",
            entity_id=str(project["_id"]),
            action="DEACTIVATE",
            actor_id=str(actor_id),
            project_id=str(project["_id"])
        )
        return {"id": str(project["_id"]), "message": "Project deactivated successfully"}

    async def restore_project(self, project_id: str, actor_id: str) -> Dict[str, Any]:
        project = await self.directory.get_project(project_id, include_inactive=True)
        if project.get("is_active", True):
            raise LedgerValidationError("Project is already active", {"project_id": str(project_id)})

        await self.db.projects.update_one(
            {"_id": project["_id"]},
            {"$set": {"is_active": True, "updated_at": datetime.utcnow()}}
        )
        await self.audit_service.log_action(
            module="PROJECTS",
            entity_type="PROJECT",
            entity_id=str(project["_id"]),
            action="RESTORE",
            actor_id=str(actor_id),
            project_id=str(project["_id"])
        )
        return {"id": str(project["_id"]), "message": "Project restored successfully"}

    async def permanent_delete_project(self, project_id: str, actor_id: str) -> Dict[str, Any]:
        project = await self.directory.get_project(project_id, include_inactive=True)
        if project.get("is_active", True):
            raise LedgerValidationError(
                "Project must be deactivated before it can be permanently deleted",
                {"project_id": str(project_id)}
            )

        # Keep the ledger in the audit trail before the document goes
        await self.audit_service.log_action(
            module="PROJECTS",
            entity_type="PROJECT",
            entity_id=str(project["_id"]),
            action="DELETE",
            actor_id=str(actor_id),
            project_id=str(project["_id"]),
            before={
                "serial_id": project.get("serial_id"),
                "name": project.get("name"),
                "client_installments": project.get("client_installments") or [],
                "employee_payments": project.get("employee_payments") or [],
                "expenses": project.get("expenses") or [],
            }
        )
        await self.db.projects.delete_one({"_id": project["_id"], "is_active": False})
        logger.warning(f"Project permanently deleted: {project['_id']} serial={project.get('serial_id')}")
        return {"id": str(project["_id"]), "message": "Project permanently deleted"}
