"""
FINANCE ROUTES

Ledger writes and financial reads:
- Record client installments, employee payments and expenses (append-only)
- Per-project summary, full report and transaction log
- Company-wide report and dashboard
- Date-windowed cash analytics and client payment history

All routes require authentication. The token's user_id is the recording actor.
"""

from fastapi import APIRouter, Depends, Query, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from datetime import datetime
from typing import Optional, Dict, Any
import logging

import config
from auth import get_current_user
from audit_service import AuditService
from database import get_db
from core.aggregation_engine import AggregationEngine
from core.ledger_models import naive_utc
from core.ledger_store import LedgerStore
from core.serialization import serialize_doc
from models import (
    ClientInstallmentCreate,
    EmployeePaymentCreate,
    ExpenseCreate,
    ProjectStatus,
)

logger = logging.getLogger(__name__)

finance_router = APIRouter(prefix="/api/finance", tags=["Finance"])


def get_ledger_store(db: AsyncIOMotorDatabase = Depends(get_db)) -> LedgerStore:
    return LedgerStore(db, audit_service=AuditService(db))


def get_aggregation_engine(db: AsyncIOMotorDatabase = Depends(get_db)) -> AggregationEngine:
    return AggregationEngine(
        db,
        dashboard_limit=config.DASHBOARD_PROJECT_LIMIT,
        report_limit=config.REPORT_PROJECT_LIMIT
    )


# ============================================
# LEDGER WRITES
# ============================================

@finance_router.post("/projects/{project_id}/client-installments", status_code=status.HTTP_201_CREATED)
async def record_client_installment(
    project_id: str,
    installment: ClientInstallmentCreate,
    current_user: dict = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store)
):
    """Record money received from the client. Returns the updated project with fresh financials."""
    project = await store.record_client_installment(project_id, installment, current_user["user_id"])
    return {"success": True, "message": "Client installment recorded", "project": project}


@finance_router.post("/projects/{project_id}/employee-payments", status_code=status.HTTP_201_CREATED)
async def record_employee_payment(
    project_id: str,
    payment: EmployeePaymentCreate,
    current_user: dict = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store)
):
    """Record a payment to an employee assigned to the project."""
    project = await store.record_employee_payment(project_id, payment, current_user["user_id"])
    return {"success": True, "message": "Employee payment recorded", "project": project}


@finance_router.post("/projects/{project_id}/expenses", status_code=status.HTTP_201_CREATED)
async def record_expense(
    project_id: str,
    expense: ExpenseCreate,
    current_user: dict = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store)
):
    project = await store.record_expense(project_id, expense, current_user["user_id"])
    return {"success": True, "message": "Expense recorded", "project": project}


# ============================================
# PROJECT READS
# ============================================

@finance_router.get("/projects/{project_id}/summary")
async def get_project_financial_summary(
    project_id: str,
    current_user: dict = Depends(get_current_user),
    engine: AggregationEngine = Depends(get_aggregation_engine)
):
    return await engine.summarize(project_id)


@finance_router.get("/projects/{project_id}/report")
async def get_project_report(
    project_id: str,
    current_user: dict = Depends(get_current_user),
    engine: AggregationEngine = Depends(get_aggregation_engine)
):
    return await engine.project_report(project_id)


@finance_router.get("/projects/{project_id}/transactions")
async def list_project_transactions(
    project_id: str,
    kind: Optional[str] = Query(default=None, description="client_installment, employee_payment or expense"),
    current_user: dict = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store)
):
    transactions = await store.list_transactions(project_id, kind)
    return {field: [serialize_doc(t) for t in entries] for field, entries in transactions.items()}


# ============================================
# COMPANY-WIDE
# ============================================

@finance_router.get("/report")
async def get_company_financial_report(
    client_id: Optional[str] = None,
    status_filter: Optional[ProjectStatus] = Query(default=None, alias="status"),
    is_active: Optional[bool] = None,
    min_budget: Optional[float] = Query(default=None, ge=0),
    max_budget: Optional[float] = Query(default=None, ge=0),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    search: Optional[str] = Query(default=None, max_length=100),
    current_user: dict = Depends(get_current_user),
    engine: AggregationEngine = Depends(get_aggregation_engine)
):
    """Company-wide roll-up. Projects whose figures cannot be computed are left out and counted."""
    filters: Dict[str, Any] = {
        "client_id": client_id,
        "status": status_filter,
        "is_active": is_active,
        "min_budget": min_budget,
        "max_budget": max_budget,
        "start_date": naive_utc(start_date),
        "end_date": naive_utc(end_date),
        "search": search,
    }
    return await engine.company_report({k: v for k, v in filters.items() if v is not None})


@finance_router.get("/dashboard")
async def get_dashboard(
    current_user: dict = Depends(get_current_user),
    engine: AggregationEngine = Depends(get_aggregation_engine)
):
    return await engine.dashboard()


@finance_router.get("/analytics")
async def get_financial_analytics(
    start_date: datetime,
    end_date: datetime,
    current_user: dict = Depends(get_current_user),
    engine: AggregationEngine = Depends(get_aggregation_engine)
):
    """Money collected and paid between two dates (end inclusive) across in-flight projects."""
    return await engine.financial_analytics(start_date, end_date)


@finance_router.get("/payments")
async def get_payment_history(
    project_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    current_user: dict = Depends(get_current_user),
    engine: AggregationEngine = Depends(get_aggregation_engine)
):
    filters = {"project_id": project_id, "start_date": start_date, "end_date": end_date}
    return await engine.payment_history({k: v for k, v in filters.items() if v is not None})
