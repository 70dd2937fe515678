"""
LEDGER STORE

Per-project append-only logs embedded in the project document:
- client_installments
- employee_payments
- expenses

Every append is ONE atomic $push through findOneAndUpdate. The update filter
re-asserts the preconditions (project active, employee on the roster) so a
concurrent deactivation or roster change cannot be slipped past, and the
document is never read, mutated in memory and written back.

Records are immutable once written. There is no update or delete path.
"""

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pydantic import BaseModel, ValidationError
from bson import ObjectId
from datetime import datetime
from typing import Any, Dict, List, Optional, Type, Union
import logging

from core.aggregation_engine import build_project_view
from core.entity_directory import EntityDirectory
from core.errors import InvalidReferenceError, LedgerValidationError, NotFoundError
from core.financial_precision import to_float, validate_non_negative
from core.ledger_models import (
    ClientInstallmentCreate,
    EmployeePaymentCreate,
    ExpenseCreate,
    ledger_transaction_adapter,
)

logger = logging.getLogger(__name__)

# Transaction kind -> embedded log field
LEDGER_FIELDS = {
    "client_installment": "client_installments",
    "employee_payment": "employee_payments",
    "expense": "expenses",
}

Payload = Union[BaseModel, Dict[str, Any]]


def parse_payload(model: Type[BaseModel], payload: Payload) -> BaseModel:
    """Validate a raw payload against its transaction model"""
    if isinstance(payload, model):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(exclude_unset=True)
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise LedgerValidationError(
            "Invalid transaction payload",
            {
                "errors": [
                    {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                    for err in e.errors()
                ]
            }
        )


class LedgerStore:
    """
    Records client installments, employee payments and expenses.

    RULES:
    - Project must exist and be active (NotFoundError)
    - Actor must exist and be active (InvalidReferenceError)
    - Employee payments: employee active AND on the project roster (InvalidReferenceError)
    - Installment and expense amounts are non-negative; employee payments may
      only be negative when flagged as a correction
    - Append-only: one atomic $push per transaction
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        directory: Optional[EntityDirectory] = None,
        audit_service=None
    ):
        self.db = db
        self.directory = directory or EntityDirectory(db)
        self.audit_service = audit_service

    # =========================================================================
    # PUBLIC OPERATIONS
    # =========================================================================

    async def record_client_installment(self, project_id: str, payload: Payload, actor_id: str) -> Dict[str, Any]:
        installment = parse_payload(ClientInstallmentCreate, payload)
        return await self._record(project_id, installment, actor_id)

    async def record_employee_payment(self, project_id: str, payload: Payload, actor_id: str) -> Dict[str, Any]:
        payment = parse_payload(EmployeePaymentCreate, payload)
        return await self._record(project_id, payment, actor_id)

    async def record_expense(self, project_id: str, payload: Payload, actor_id: str) -> Dict[str, Any]:
        expense = parse_payload(ExpenseCreate, payload)
        return await self._record(project_id, expense, actor_id)

    async def record(self, project_id: str, payload: Payload, actor_id: str) -> Dict[str, Any]:
        """Record any transaction kind, dispatched on its ``kind`` tag"""
        if isinstance(payload, BaseModel):
            payload = payload.model_dump()
        try:
            transaction = ledger_transaction_adapter.validate_python(payload)
        except ValidationError as e:
            raise LedgerValidationError(
                "Invalid transaction payload",
                {"errors": [{"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]} for err in e.errors()]}
            )
        return await self._record(project_id, transaction, actor_id)

    async def list_transactions(self, project_id: str, kind: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        """Ledger entries in append order, optionally for a single kind"""
        if kind is not None and kind not in LEDGER_FIELDS:
            raise LedgerValidationError(f"Unknown transaction kind: {kind}", {"kind": kind})

        project = await self.directory.get_project(project_id)
        kinds = [kind] if kind else list(LEDGER_FIELDS)
        return {LEDGER_FIELDS[k]: list(project.get(LEDGER_FIELDS[k]) or []) for k in kinds}

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _build_record(self, transaction: BaseModel, actor_id: str) -> Dict[str, Any]:
        now = datetime.utcnow()
        record = transaction.model_dump(exclude={"kind"})
        record.update({
            "transaction_id": str(ObjectId()),
            "amount": to_float(record["amount"]),
            "date": record.get("date") or now,
            "recorded_by": str(actor_id),
            "recorded_at": now,
        })
        return record

    async def _record(self, project_id: str, transaction: BaseModel, actor_id: str) -> Dict[str, Any]:
        kind = transaction.kind
        field = LEDGER_FIELDS[kind]

        if kind != "employee_payment" or not transaction.correction:
            validate_non_negative(transaction.amount, "amount")

        project = await self.directory.get_project(project_id)
        await self.directory.require_actor(actor_id)

        guard: Dict[str, Any] = {"_id": project["_id"], "is_active": {"$ne": False}}

        if kind == "employee_payment":
            await self.directory.require_active_employee(transaction.employee_id)
            if not self._on_roster(project, transaction.employee_id):
                raise self._not_assigned(project_id, transaction.employee_id)
            guard["employees.employee_id"] = transaction.employee_id

        record = self._build_record(transaction, actor_id)

        updated = await self.db.projects.find_one_and_update(
            guard,
            {
                "$push": {field: record},
                "$set": {"updated_at": record["recorded_at"]}
            },
            return_document=ReturnDocument.AFTER
        )

        if updated is None:
            # Guard failed between the checks above and the push: nothing was written
            current = await self.db.projects.find_one({"_id": project["_id"]})
            if not current or current.get("is_active") is False or kind != "employee_payment":
                raise NotFoundError("Project not found", {"project_id": str(project_id)})
            raise self._not_assigned(project_id, transaction.employee_id)

        logger.info(
            f"[LEDGER] {kind} {record['transaction_id']} amount={record['amount']} "
            f"project={project_id} by={actor_id}"
        )

        if self.audit_service is not None:
            await self.audit_service.log_transaction(kind, str(project["_id"]), record, str(actor_id))

        employees = await self.directory.employees_by_id(
            a.get("employee_id") for a in updated.get("employees") or []
        )
        return build_project_view(updated, employees)

    @staticmethod
    def _on_roster(project: Dict[str, Any], employee_id: str) -> bool:
        return any(
            str(a.get("employee_id")) == str(employee_id)
            for a in project.get("employees") or []
        )

    @staticmethod
    def _not_assigned(project_id: str, employee_id: str) -> InvalidReferenceError:
        return InvalidReferenceError(
            "Employee is not assigned to this project",
            {
                "project_id": str(project_id),
                "employee_id": str(employee_id),
                "reason": "employee_not_assigned_to_project"
            }
        )
