import pytest

from audit_service import AuditService
from core.errors import InvalidReferenceError, LedgerValidationError, NotFoundError
from directory_service import DirectoryService
from models import ClientCreate, EmployeeCreate


@pytest.fixture
def service(db):
    return DirectoryService(db, audit_service=AuditService(db))


class TestClients:

    @pytest.mark.asyncio
    async def test_clients_get_sequential_serials(self, service, actor_id):
        first = await service.create_client(
            ClientCreate(name="Dana", company_name="Northwind", email="Dana@Northwind.example"), actor_id
        )
        second = await service.create_client(
            ClientCreate(name="Ravi", company_name="Bluepeak", email="ravi@bluepeak.example"), actor_id
        )
        assert (first["serial_id"], second["serial_id"]) == (1, 2)
        assert first["email"] == "dana@northwind.example"
        assert first["is_active"] is True

    @pytest.mark.asyncio
    async def test_deactivate_and_restore(self, service, actor_id):
        created = await service.create_client(
            ClientCreate(name="Dana", company_name="Northwind", email="dana@northwind.example"), actor_id
        )
        await service.deactivate_client(created["id"], actor_id)
        with pytest.raises(NotFoundError):
            await service.get_client(created["id"])
        assert (await service.list_clients())["count"] == 0

        await service.restore_client(created["id"], actor_id)
        assert (await service.get_client(created["id"]))["name"] == "Dana"
        with pytest.raises(LedgerValidationError):
            await service.restore_client(created["id"], actor_id)

    @pytest.mark.asyncio
    async def test_unknown_actor_rejected(self, service, mongo):
        with pytest.raises(InvalidReferenceError):
            await service.create_client(
                ClientCreate(name="Dana", company_name="Northwind", email="dana@northwind.example"), "nobody"
            )
        assert mongo.counters.count_documents({}) == 0


class TestEmployees:

    @pytest.mark.asyncio
    async def test_duplicate_email_rejected(self, service, actor_id):
        await service.create_employee(EmployeeCreate(name="Alex", email="alex@ledger.example"), actor_id)
        with pytest.raises(LedgerValidationError):
            await service.create_employee(EmployeeCreate(name="Alex Two", email="ALEX@ledger.example"), actor_id)

    @pytest.mark.asyncio
    async def test_list_in_serial_order(self, service, actor_id):
        for name in ("Alex", "Sam", "Jordan"):
            await service.create_employee(EmployeeCreate(name=name, email=f"{name.lower()}@ledger.example"), actor_id)

        listing = await service.list_employees(limit=2)
        assert listing["count"] == 3
        assert [e["name"] for e in listing["data"]] == ["Alex", "Sam"]
        assert [e["serial_id"] for e in listing["data"]] == [1, 2]
