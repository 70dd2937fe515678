from fastapi import APIRouter, Depends, Query, status
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from datetime import datetime
from typing import Optional
import logging

from auth import get_current_user
from audit_service import AuditService
from database import build_allocator, get_db, get_transaction_client
from models import ProjectCreate, ProjectUpdate, ProjectStatus
from project_service import ProjectService

logger = logging.getLogger(__name__)

project_router = APIRouter(prefix="/api/projects", tags=["Projects"])


def get_project_service(
    db: AsyncIOMotorDatabase = Depends(get_db),
    client: Optional[AsyncIOMotorClient] = Depends(get_transaction_client)
) -> ProjectService:
    return ProjectService(
        db, client=client, allocator=build_allocator(db), audit_service=AuditService(db)
    )


@project_router.post("", status_code=status.HTTP_201_CREATED)
async def create_project(
    project_data: ProjectCreate,
    current_user: dict = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service)
):
    """Create a project. The project serial id is allocated once every reference checks out."""
    return await service.create_project(project_data, current_user["user_id"])


@project_router.get("")
async def list_projects(
    client_id: Optional[str] = None,
    status_filter: Optional[ProjectStatus] = Query(default=None, alias="status"),
    min_budget: Optional[float] = Query(default=None, ge=0),
    max_budget: Optional[float] = Query(default=None, ge=0),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    search: Optional[str] = Query(default=None, max_length=100),
    include_inactive: bool = False,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=10, ge=1, le=100),
    current_user: dict = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service)
):
    filters = {
        "client_id": client_id,
        "status": status_filter,
        "min_budget": min_budget,
        "max_budget": max_budget,
        "start_date": start_date,
        "end_date": end_date,
        "search": search,
    }
    return await service.list_projects(
        {k: v for k, v in filters.items() if v is not None},
        skip=skip,
        limit=limit,
        include_inactive=include_inactive
    )


@project_router.get("/{project_id}")
async def get_project(
    project_id: str,
    include_inactive: bool = False,
    current_user: dict = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service)
):
    return await service.get_project(project_id, include_inactive=include_inactive)


@project_router.patch("/{project_id}")
async def update_project(
    project_id: str,
    project_data: ProjectUpdate,
    current_user: dict = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service)
):
    """Update project metadata. Ledger entries and the deposit cannot be edited here."""
    return await service.update_project(project_id, project_data, current_user["user_id"])


@project_router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    current_user: dict = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service)
):
    return await service.delete_project(project_id, current_user["user_id"])


@project_router.post("/{project_id}/restore")
async def restore_project(
    project_id: str,
    current_user: dict = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service)
):
    return await service.restore_project(project_id, current_user["user_id"])


@project_router.delete("/{project_id}/permanent")
async def permanent_delete_project(
    project_id: str,
    current_user: dict = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service)
):
    """Remove a deactivated project for good. The ledger is kept in the audit trail."""
    return await service.permanent_delete_project(project_id, current_user["user_id"])
