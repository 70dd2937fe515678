"""
ENTITY DIRECTORY

Lookup-by-id for projects, clients, employees, services and actors.
Existence and active-flag checks only; the directory never mutates.
"""

from motor.motor_asyncio import AsyncIOMotorDatabase
from bson import ObjectId
from bson.errors import InvalidId
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
import logging
import re

from core.errors import InvalidReferenceError, NotFoundError

logger = logging.getLogger(__name__)


def parse_object_id(value: Any) -> Optional[ObjectId]:
    """ObjectId for a hex string, None when the value is not a valid id"""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def build_project_query(filters: Optional[Dict[str, Any]] = None, active_only: bool = False) -> Dict[str, Any]:
    """
    Translate report/list filters into a MongoDB query.

    Supported filters: client_id, status, is_active, min_budget, max_budget,
    start_date, end_date (range over the project start date) and search
    (case-insensitive match on name or description).
    """
    filters = filters or {}
    query: Dict[str, Any] = {"is_active": {"$ne": False}} if active_only else {}

    if filters.get("client_id"):
        query["client_id"] = filters["client_id"]
    if filters.get("status"):
        query["status"] = filters["status"]
    if filters.get("is_active") is not None:
        query["is_active"] = filters["is_active"]

    budget_range = {}
    if filters.get("min_budget") is not None:
        budget_range["$gte"] = filters["min_budget"]
    if filters.get("max_budget") is not None:
        budget_range["$lte"] = filters["max_budget"]
    if budget_range:
        query["budget"] = budget_range

    date_range = {}
    if filters.get("start_date"):
        date_range["$gte"] = _as_datetime(filters["start_date"])
    if filters.get("end_date"):
        date_range["$lte"] = _as_datetime(filters["end_date"])
    if date_range:
        query["start_date"] = date_range

    if filters.get("search"):
        pattern = re.escape(str(filters["search"]))
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]

    return query


def _as_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


class EntityDirectory:
    """
    Reference checks used by the Ledger Store and the project lifecycle.

    RULES:
    - Missing or inactive project -> NotFoundError
    - Missing or inactive actor / employee / client -> InvalidReferenceError
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    # =========================================================================
    # PROJECTS
    # =========================================================================

    async def get_project(self, project_id: str, include_inactive: bool = False, session=None) -> Dict[str, Any]:
        oid = parse_object_id(project_id)
        project = None
        if oid is not None:
            project = await self.db.projects.find_one({"_id": oid}, session=session)

        if not project or (not include_inactive and project.get("is_active") is False):
            raise NotFoundError("Project not found", {"project_id": str(project_id)})
        return project

    async def find_projects(
        self,
        query: Dict[str, Any],
        skip: int = 0,
        limit: int = 0,
        sort_newest_first: bool = True
    ) -> List[Dict[str, Any]]:
        cursor = self.db.projects.find(
            query,
            sort=[("created_at", -1 if sort_newest_first else 1)],
            skip=skip,
            limit=limit
        )
        return await cursor.to_list(length=None)

    # =========================================================================
    # ACTORS
    # =========================================================================

    async def require_actor(self, actor_id: str, session=None) -> Dict[str, Any]:
        oid = parse_object_id(actor_id)
        actor = None
        if oid is not None:
            actor = await self.db.users.find_one({"_id": oid}, session=session)

        if not actor or actor.get("is_active") is False:
            raise InvalidReferenceError(
                "Actor not found or inactive",
                {"actor_id": str(actor_id), "reason": "actor_not_found"}
            )
        return actor

    # =========================================================================
    # EMPLOYEES
    # =========================================================================

    async def require_active_employee(self, employee_id: str, session=None) -> Dict[str, Any]:
        oid = parse_object_id(employee_id)
        employee = None
        if oid is not None:
            employee = await self.db.employees.find_one({"_id": oid}, session=session)

        if not employee or not employee.get("is_active", False):
            raise InvalidReferenceError(
                "Employee not found or inactive",
                {"employee_id": str(employee_id), "reason": "employee_not_found"}
            )
        return employee

    async def require_active_employees(self, employee_ids: Iterable[str], session=None) -> List[Dict[str, Any]]:
        ids = list(dict.fromkeys(employee_ids))
        if not ids:
            return []

        oids = [parse_object_id(e) for e in ids]
        invalid = [e for e, oid in zip(ids, oids) if oid is None]
        if invalid:
            raise InvalidReferenceError(
                "One or more employees are not found or inactive",
                {"employee_ids": invalid, "reason": "employee_not_found"}
            )

        employees = await self.db.employees.find(
            {"_id": {"$in": oids}, "is_active": True},
            session=session
        ).to_list(length=None)

        if len(employees) != len(ids):
            found = {str(e["_id"]) for e in employees}
            raise InvalidReferenceError(
                "One or more employees are not found or inactive",
                {"employee_ids": [e for e in ids if e not in found], "reason": "employee_not_found"}
            )
        return employees

    # =========================================================================
    # CLIENTS / SERVICES
    # =========================================================================

    async def require_active_client(self, client_id: str, session=None) -> Dict[str, Any]:
        oid = parse_object_id(client_id)
        client = None
        if oid is not None:
            client = await self.db.clients.find_one({"_id": oid}, session=session)

        if not client or not client.get("is_active", False):
            raise InvalidReferenceError(
                "Client not found or inactive",
                {"client_id": str(client_id), "reason": "client_not_found"}
            )
        return client

    async def require_services(self, service_ids: Iterable[str], session=None) -> None:
        ids = list(dict.fromkeys(service_ids))
        if not ids:
            return
        oids = [oid for oid in (parse_object_id(s) for s in ids) if oid is not None]
        count = await self.db.services.count_documents({"_id": {"$in": oids}}, session=session)
        if count != len(ids):
            raise InvalidReferenceError(
                "One or more services are not found",
                {"service_ids": ids, "reason": "service_not_found"}
            )

    # =========================================================================
    # DISPLAY LOOKUPS (no active-flag checks)
    # =========================================================================

    async def _by_ids(self, collection: str, ids: Iterable[Any]) -> Dict[str, Dict[str, Any]]:
        oids = [oid for oid in (parse_object_id(i) for i in set(ids) if i) if oid is not None]
        if not oids:
            return {}
        docs = await self.db[collection].find({"_id": {"$in": oids}}).to_list(length=None)
        return {str(d["_id"]): d for d in docs}

    async def employees_by_id(self, ids: Iterable[Any]) -> Dict[str, Dict[str, Any]]:
        return await self._by_ids("employees", ids)

    async def users_by_id(self, ids: Iterable[Any]) -> Dict[str, Dict[str, Any]]:
        return await self._by_ids("users", ids)

    async def clients_by_id(self, ids: Iterable[Any]) -> Dict[str, Dict[str, Any]]:
        return await self._by_ids("clients", ids)
