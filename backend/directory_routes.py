from fastapi import APIRouter, Depends, Query, status
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from typing import Optional

from auth import get_current_user
from audit_service import AuditService
from database import build_allocator, get_db, get_transaction_client
from directory_service import DirectoryService
from models import ClientCreate, EmployeeCreate

directory_router = APIRouter(prefix="/api", tags=["Directory"])


def get_directory_service(
    db: AsyncIOMotorDatabase = Depends(get_db),
    client: Optional[AsyncIOMotorClient] = Depends(get_transaction_client)
) -> DirectoryService:
    return DirectoryService(
        db, client=client, allocator=build_allocator(db), audit_service=AuditService(db)
    )


# ============================================
# CLIENTS
# ============================================

@directory_router.post("/clients", status_code=status.HTTP_201_CREATED)
async def create_client(
    client_data: ClientCreate,
    current_user: dict = Depends(get_current_user),
    service: DirectoryService = Depends(get_directory_service)
):
    return await service.create_client(client_data, current_user["user_id"])


@directory_router.get("/clients")
async def list_clients(
    include_inactive: bool = False,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    current_user: dict = Depends(get_current_user),
    service: DirectoryService = Depends(get_directory_service)
):
    return await service.list_clients(skip=skip, limit=limit, include_inactive=include_inactive)


@directory_router.get("/clients/{client_id}")
async def get_client(
    client_id: str,
    include_inactive: bool = False,
    current_user: dict = Depends(get_current_user),
    service: DirectoryService = Depends(get_directory_service)
):
    return await service.get_client(client_id, include_inactive=include_inactive)


@directory_router.delete("/clients/{client_id}")
async def deactivate_client(
    client_id: str,
    current_user: dict = Depends(get_current_user),
    service: DirectoryService = Depends(get_directory_service)
):
    return await service.deactivate_client(client_id, current_user["user_id"])


@directory_router.post("/clients/{client_id}/restore")
async def restore_client(
    client_id: str,
    current_user: dict = Depends(get_current_user),
    service: DirectoryService = Depends(get_directory_service)
):
    return await service.restore_client(client_id, current_user["user_id"])


# ============================================
# EMPLOYEES
# ============================================

@directory_router.post("/employees", status_code=status.HTTP_201_CREATED)
async def create_employee(
    employee_data: EmployeeCreate,
    current_user: dict = Depends(get_current_user),
    service: DirectoryService = Depends(get_directory_service)
):
    """Create an employee. E-mail addresses are unique across employees."""
    return await service.create_employee(employee_data, current_user["user_id"])


@directory_router.get("/employees")
async def list_employees(
    include_inactive: bool = False,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    current_user: dict = Depends(get_current_user),
    service: DirectoryService = Depends(get_directory_service)
):
    return await service.list_employees(skip=skip, limit=limit, include_inactive=include_inactive)


@directory_router.get("/employees/{employee_id}")
async def get_employee(
    employee_id: str,
    include_inactive: bool = False,
    current_user: dict = Depends(get_current_user),
    service: DirectoryService = Depends(get_directory_service)
):
    return await service.get_employee(employee_id, include_inactive=include_inactive)


@directory_router.delete("/employees/{employee_id}")
async def deactivate_employee(
    employee_id: str,
    current_user: dict = Depends(get_current_user),
    service: DirectoryService = Depends(get_directory_service)
):
    return await service.deactivate_employee(employee_id, current_user["user_id"])


@directory_router.post("/employees/{employee_id}/restore")
async def restore_employee(
    employee_id: str,
    current_user: dict = Depends(get_current_user),
    service: DirectoryService = Depends(get_directory_service)
):
    return await service.restore_employee(employee_id, current_user["user_id"])
