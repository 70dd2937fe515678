from datetime import datetime

import pytest
from pydantic import ValidationError

from core.ledger_models import (
    ClientInstallmentCreate,
    EmployeePaymentCreate,
    ExpenseCreate,
    ledger_transaction_adapter,
)
from models import ClientCreate, EmployeeAssignment, ProjectCreate, ProjectUpdate


class TestLedgerModels:

    def test_discriminator_picks_model(self):
        parsed = ledger_transaction_adapter.validate_python(
            {"kind": "employee_payment", "employee_id": "abc", "amount": 10}
        )
        assert isinstance(parsed, EmployeePaymentCreate)
        assert parsed.method == "bank_transfer"

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValidationError):
            ClientInstallmentCreate(amount=10, employee_id="abc")

    def test_expense_category_is_closed(self):
        with pytest.raises(ValidationError):
            ExpenseCreate(description="Lunch", amount=10, category="food")

    def test_expense_description_stripped(self):
        with pytest.raises(ValidationError):
            ExpenseCreate(description="  a ", amount=10, category="other")

    def test_correction_allows_negative_payment(self):
        assert EmployeePaymentCreate(employee_id="abc", amount=-5, correction=True).amount == -5
        with pytest.raises(ValidationError):
            EmployeePaymentCreate(employee_id="abc", amount=-5)

    def test_non_finite_amounts_rejected(self):
        with pytest.raises(ValidationError):
            ClientInstallmentCreate(amount=float("inf"))
        with pytest.raises(ValidationError):
            EmployeePaymentCreate(employee_id="abc", amount=float("nan"), correction=True)
        with pytest.raises(ValidationError):
            ExpenseCreate(description="Hosting", amount=float("inf"), category="software")


class TestProjectModels:

    def test_end_before_start_rejected(self):
        with pytest.raises(ValidationError):
            ProjectCreate(
                name="Late", client_id="c", budget=10,
                start_date=datetime(2024, 5, 1), end_date=datetime(2024, 4, 1)
            )

    def test_duplicate_assignment_rejected(self):
        with pytest.raises(ValidationError):
            ProjectCreate(
                name="Twice", client_id="c", budget=10, start_date=datetime(2024, 1, 1),
                employees=[
                    {"employee_id": "e1", "compensation": 10},
                    {"employee_id": "e1", "compensation": 20},
                ]
            )

    def test_update_cannot_touch_ledger_or_deposit(self):
        with pytest.raises(ValidationError):
            ProjectUpdate(deposit=100)
        with pytest.raises(ValidationError):
            ProjectUpdate(client_installments=[])

    def test_client_phone_format(self):
        assert ClientCreate(
            name="Dana", company_name="Northwind", email="dana@northwind.example", phones=["+1 (555) 010-2030"]
        ).phones
        with pytest.raises(ValidationError):
            ClientCreate(name="Dana", company_name="Northwind", email="dana@northwind.example", phones=["123"])

    def test_non_finite_project_figures_rejected(self):
        with pytest.raises(ValidationError):
            ProjectCreate(name="Huge", client_id="c", budget=float("inf"), start_date=datetime(2024, 1, 1))
        with pytest.raises(ValidationError):
            ProjectUpdate(budget=float("nan"))
        with pytest.raises(ValidationError):
            EmployeeAssignment(employee_id="e1", compensation=float("inf"))

    def test_mixed_timezone_dates_compare_as_utc(self):
        project = ProjectCreate(
            name="Zoned", client_id="c", budget=10,
            start_date="2024-01-01T00:00:00Z", end_date="2024-02-01T00:00:00"
        )
        assert project.start_date == datetime(2024, 1, 1)
        assert project.start_date.tzinfo is None

        with pytest.raises(ValidationError):
            ProjectCreate(
                name="Zoned", client_id="c", budget=10,
                start_date="2024-01-02T03:00:00+02:00", end_date="2024-01-02T00:00:00"
            )

    def test_update_dates_are_naive_utc(self):
        update = ProjectUpdate(end_date="2024-06-01T05:30:00+05:30")
        assert update.end_date == datetime(2024, 6, 1)
