"""
Project lifecycle tests: creation with serial ids, listing, metadata updates,
soft delete, restore and permanent delete.
"""
from datetime import datetime

import pytest
from bson import ObjectId

from audit_service import AuditService
from core.entity_directory import EntityDirectory
from core.errors import InvalidReferenceError, LedgerValidationError, NotFoundError
from core.ledger_store import LedgerStore
from models import EmployeeAssignment, ProjectCreate, ProjectUpdate
from project_service import ProjectService


@pytest.fixture
def service(db):
    return ProjectService(db, audit_service=AuditService(db))


def _project(client_id, employees=(), **overrides):
    data = {
        "name": "Storefront",
        "client_id": client_id,
        "budget": 15000,
        "deposit": 5000,
        "start_date": datetime(2024, 1, 1),
        "status": "active",
        "employees": [EmployeeAssignment(employee_id=e, compensation=c) for e, c in employees],
    }
    data.update(overrides)
    return ProjectCreate(**data)


class TestCreate:

    @pytest.mark.asyncio
    async def test_serial_ids_increase(self, service, client_id, actor_id):
        first = await service.create_project(_project(client_id), actor_id)
        second = await service.create_project(_project(client_id, name="Second"), actor_id)
        assert (first["serial_id"], second["serial_id"]) == (1, 2)

    @pytest.mark.asyncio
    async def test_new_project_has_empty_ledger_and_deposit_counted(self, service, client_id, make_employee, actor_id):
        employee_id = make_employee(name="Alex")
        view = await service.create_project(_project(client_id, employees=[(employee_id, 3000)]), actor_id)

        assert view["client_installments"] == []
        assert view["financials"]["money_collected"] == 5000.0
        assert view["financials"]["total_employee_compensation"] == 3000.0
        assert view["employees"][0]["name"] == "Alex"
        assert view["employees"][0]["payment_status"] == "pending"

    @pytest.mark.asyncio
    async def test_inactive_client_rejected_without_using_a_serial(self, service, mongo, client_id, actor_id):
        mongo.clients.update_one({"_id": ObjectId(client_id)}, {"$set": {"is_active": False}})
        with pytest.raises(InvalidReferenceError):
            await service.create_project(_project(client_id), actor_id)
        assert mongo.counters.find_one({"_id": "projectId"}) is None

    @pytest.mark.asyncio
    async def test_unknown_employee_rejected(self, service, client_id, actor_id):
        with pytest.raises(InvalidReferenceError) as exc_info:
            await service.create_project(_project(client_id, employees=[(str(ObjectId()), 100)]), actor_id)
        assert exc_info.value.details["reason"] == "employee_not_found"

    @pytest.mark.asyncio
    async def test_creation_is_audited(self, service, client_id, actor_id):
        view = await service.create_project(_project(client_id), actor_id)
        logs = await service.audit_service.find_entries(entity_type="PROJECT", entity_id=view["id"])
        assert [log["action"] for log in logs] == ["CREATE"]


class TestListAndGet:

    @pytest.mark.asyncio
    async def test_list_excludes_inactive_by_default(self, service, make_project):
        make_project(budget=100)
        make_project(budget=200, is_active=False)

        active = await service.list_projects()
        everything = await service.list_projects(include_inactive=True)

        assert active["count"] == 1
        assert everything["count"] == 2

    @pytest.mark.asyncio
    async def test_list_filters_and_pagination(self, service, make_project):
        for budget in (100, 500, 900, 1300):
            make_project(budget=budget, name=f"Build {budget}")

        result = await service.list_projects({"min_budget": 400, "max_budget": 1000})
        assert result["count"] == 2

        page = await service.list_projects(skip=1, limit=2)
        assert page["count"] == 4
        assert len(page["data"]) == 2

        found = await service.list_projects({"search": "build 13"})
        assert [p["budget"] for p in found["data"]] == [1300]

    @pytest.mark.asyncio
    async def test_get_inactive_requires_flag(self, service, make_project):
        project_id = make_project(budget=100, is_active=False)
        with pytest.raises(NotFoundError):
            await service.get_project(project_id)
        assert (await service.get_project(project_id, include_inactive=True))["id"] == project_id


class TestUpdate:

    @pytest.mark.asyncio
    async def test_metadata_update(self, service, make_project, actor_id):
        project_id = make_project(budget=100)
        view = await service.update_project(project_id, ProjectUpdate(name="Renamed", budget=250), actor_id)
        assert view["name"] == "Renamed"
        assert view["financials"]["budget"] == 250.0

    @pytest.mark.asyncio
    async def test_empty_update_rejected(self, service, make_project, actor_id):
        project_id = make_project(budget=100)
        with pytest.raises(LedgerValidationError):
            await service.update_project(project_id, ProjectUpdate(), actor_id)

    @pytest.mark.asyncio
    async def test_paid_employee_cannot_be_removed(self, db, service, make_project, make_employee, actor_id):
        paid = make_employee()
        other = make_employee()
        project_id = make_project(budget=1000, employees=[(paid, 300)])
        await LedgerStore(db).record_employee_payment(project_id, {"employee_id": paid, "amount": 100}, actor_id)

        with pytest.raises(LedgerValidationError) as exc_info:
            await service.update_project(
                project_id,
                ProjectUpdate(employees=[EmployeeAssignment(employee_id=other, compensation=300)]),
                actor_id
            )
        assert exc_info.value.details["employee_ids"] == [paid]

    @pytest.mark.asyncio
    async def test_roster_change_keeps_assignment_ids(self, service, mongo, make_project, make_employee, actor_id):
        kept = make_employee()
        added = make_employee()
        project_id = make_project(budget=1000, employees=[(kept, 300)])
        original = mongo.projects.find_one({"_id": ObjectId(project_id)})["employees"][0]["assignment_id"]

        view = await service.update_project(
            project_id,
            ProjectUpdate(employees=[
                EmployeeAssignment(employee_id=kept, compensation=400),
                EmployeeAssignment(employee_id=added, compensation=200),
            ]),
            actor_id
        )
        assert view["employees"][0]["assignment_id"] == original
        assert view["financials"]["total_employee_compensation"] == 600.0

    @pytest.mark.asyncio
    async def test_end_date_checked_against_stored_start(self, service, make_project, actor_id):
        project_id = make_project(budget=100)
        with pytest.raises(LedgerValidationError):
            await service.update_project(project_id, ProjectUpdate(end_date=datetime(2000, 1, 1)), actor_id)

    @pytest.mark.asyncio
    async def test_aware_end_date_against_stored_start(self, service, make_project, actor_id):
        project_id = make_project(budget=100)
        view = await service.update_project(
            project_id, ProjectUpdate(end_date="2024-06-01T00:00:00Z"), actor_id
        )
        assert view["end_date"] == "2024-06-01T00:00:00"

    @pytest.mark.asyncio
    async def test_project_without_active_flag_can_be_updated(self, service, mongo, make_project, actor_id):
        project_id = make_project(budget=100)
        mongo.projects.update_one({"_id": ObjectId(project_id)}, {"$unset": {"is_active": ""}})
        view = await service.update_project(project_id, ProjectUpdate(name="Renamed"), actor_id)
        assert view["name"] == "Renamed"

    @pytest.mark.asyncio
    async def test_payment_landing_during_roster_edit_blocks_removal(self, db, mongo, make_project, make_employee, actor_id):
        leaving = make_employee()
        staying = make_employee()
        project_id = make_project(budget=1000, employees=[(leaving, 300), (staying, 300)])

        class PaymentDuringCheck(EntityDirectory):
            async def require_active_employees(self, employee_ids, session=None):
                mongo.projects.update_one(
                    {"_id": ObjectId(project_id)},
                    {"$push": {"employee_payments": {"employee_id": leaving, "amount": 50}}}
                )
                return await super().require_active_employees(employee_ids, session=session)

        service = ProjectService(db, directory=PaymentDuringCheck(db), audit_service=AuditService(db))
        with pytest.raises(LedgerValidationError) as exc_info:
            await service.update_project(
                project_id,
                ProjectUpdate(employees=[EmployeeAssignment(employee_id=staying, compensation=300)]),
                actor_id
            )

        assert exc_info.value.details["employee_ids"] == [leaving]
        stored = mongo.projects.find_one({"_id": ObjectId(project_id)})
        assert [a["employee_id"] for a in stored["employees"]] == [leaving, staying]


class TestDeleteRestore:

    @pytest.mark.asyncio
    async def test_soft_delete_then_restore(self, service, make_project, actor_id):
        project_id = make_project(budget=100)
        await service.delete_project(project_id, actor_id)
        with pytest.raises(NotFoundError):
            await service.get_project(project_id)

        await service.restore_project(project_id, actor_id)
        assert (await service.get_project(project_id))["is_active"] is True

    @pytest.mark.asyncio
    async def test_restore_active_project_rejected(self, service, make_project, actor_id):
        project_id = make_project(budget=100)
        with pytest.raises(LedgerValidationError):
            await service.restore_project(project_id, actor_id)

    @pytest.mark.asyncio
    async def test_permanent_delete_requires_soft_delete(self, service, mongo, make_project, actor_id):
        project_id = make_project(budget=100, client_installments=[{"amount": 40}])
        with pytest.raises(LedgerValidationError):
            await service.permanent_delete_project(project_id, actor_id)

        await service.delete_project(project_id, actor_id)
        await service.permanent_delete_project(project_id, actor_id)

        assert mongo.projects.find_one({"_id": ObjectId(project_id)}) is None
        logs = await service.audit_service.find_entries(entity_id=project_id)
        deleted = [log for log in logs if log["action"] == "DELETE"][0]
        assert deleted["before"]["client_installments"] == [{"amount": 40}]
