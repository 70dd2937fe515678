"""
Seed script for the Business Ledger backend.

Creates:
- 1 Admin actor (prints a bearer token for the API)
- 2 Clients, 3 Employees (serial ids from the clientId / employeeId counters)
- 1 Demo project with a deposit, one installment, one payment and one expense
"""

import asyncio
from datetime import datetime, timedelta

from motor.motor_asyncio import AsyncIOMotorClient

import config
from auth import create_access_token
from audit_service import AuditService
from core.ledger_store import LedgerStore
from database import build_allocator, create_indexes
from directory_service import DirectoryService
from models import ClientCreate, EmployeeCreate, EmployeeAssignment, ProjectCreate
from project_service import ProjectService

DEMO_CLIENTS = [
    {"name": "Dana Whitfield", "company_name": "Northwind Retail", "email": "dana@northwind.example", "industry": "Retail"},
    {"name": "Ravi Menon", "company_name": "Bluepeak Logistics", "email": "ravi@bluepeak.example", "industry": "Logistics"},
]

DEMO_EMPLOYEES = [
    {"name": "Alex Moreno", "email": "alex@ledger.example", "position": "Developer", "department": "Engineering"},
    {"name": "Sam Okafor", "email": "sam@ledger.example", "position": "Designer", "department": "Design"},
    {"name": "Jordan Lee", "email": "jordan@ledger.example", "position": "Project Manager", "department": "Delivery"},
]


async def seed_database():
    """Seed the database with initial data"""

    client = AsyncIOMotorClient(config.MONGO_URL)
    db = client[config.DB_NAME]
    audit_service = AuditService(db)

    print("Starting database seeding...")

    try:
        allocator = build_allocator(db)
        await allocator.create_unique_constraints()
        await create_indexes(db)

        # ============================================
        # 1. ADMIN ACTOR
        # ============================================
        print("Creating admin actor...")
        admin_email = "admin@example.com"
        existing_admin = await db.users.find_one({"email": admin_email})

        if existing_admin:
            print("   Admin actor already exists. Skipping...")
            admin_id = str(existing_admin["_id"])
        else:
            result = await db.users.insert_one({
                "name": "System Administrator",
                "email": admin_email,
                "role": "Admin",
                "is_active": True,
                "created_at": datetime.utcnow(),
                "updated_at": datetime.utcnow()
            })
            admin_id = str(result.inserted_id)
            print(f"   Admin actor created: {admin_id}")

        # ============================================
        # 2. CLIENTS AND EMPLOYEES
        # ============================================
        directory = DirectoryService(db, allocator=allocator, audit_service=audit_service)

        print("Creating clients...")
        client_ids = []
        for data in DEMO_CLIENTS:
            existing = await db.clients.find_one({"email": data["email"]})
            if existing:
                print(f"   Client {data['email']} already exists. Skipping...")
                client_ids.append(str(existing["_id"]))
                continue
            created = await directory.create_client(ClientCreate(**data), admin_id)
            client_ids.append(created["id"])
            print(f"   Client created: #{created['serial_id']} {data['company_name']}")

        print("Creating employees...")
        employee_ids = []
        for data in DEMO_EMPLOYEES:
            existing = await db.employees.find_one({"email": data["email"]})
            if existing:
                print(f"   Employee {data['email']} already exists. Skipping...")
                employee_ids.append(str(existing["_id"]))
                continue
            created = await directory.create_employee(EmployeeCreate(**data), admin_id)
            employee_ids.append(created["id"])
            print(f"   Employee created: #{created['serial_id']} {data['name']}")

        # ============================================
        # 3. DEMO PROJECT AND LEDGER
        # ============================================
        print("Creating demo project...")
        if await db.projects.count_documents({}):
            print("   Projects already exist. Skipping...")
        else:
            projects = ProjectService(db, allocator=allocator, audit_service=audit_service)
            project = await projects.create_project(
                ProjectCreate(
                    name="Storefront Relaunch",
                    description="E-commerce storefront redesign and rollout",
                    client_id=client_ids[0],
                    budget=15000,
                    deposit=5000,
                    start_date=datetime.utcnow(),
                    end_date=datetime.utcnow() + timedelta(days=90),
                    status="active",
                    employees=[
                        EmployeeAssignment(employee_id=employee_ids[0], role="Lead developer", compensation=3000),
                        EmployeeAssignment(employee_id=employee_ids[1], role="Designer", compensation=2000),
                    ]
                ),
                admin_id
            )

            ledger = LedgerStore(db, audit_service=audit_service)
            await ledger.record_client_installment(
                project["id"], {"kind": "client_installment", "amount": 2500, "reference": "INV-0001"}, admin_id
            )
            await ledger.record_employee_payment(
                project["id"], {"kind": "employee_payment", "employee_id": employee_ids[0], "amount": 1500}, admin_id
            )
            view = await ledger.record_expense(
                project["id"], {"kind": "expense", "description": "Hosting", "amount": 120, "category": "software"}, admin_id
            )
            financials = view["financials"]
            print(f"   Project created: #{project['serial_id']} {project['name']}")
            print(f"      Collected: {financials['money_collected']}  Paid: {financials['money_paid']}  "
                  f"Net: {financials['net_profit_to_date']}")

        token = create_access_token(
            {"user_id": admin_id, "email": admin_email},
            expires_delta=timedelta(days=30)
        )

        # ============================================
        # SUMMARY
        # ============================================
        print("\n" + "=" * 60)
        print("DATABASE SEEDING COMPLETE")
        print("=" * 60)
        print(f"Admin actor ID: {admin_id}")
        print(f"Counters: {await allocator.list_counters()}")
        print("\nBearer token (valid 30 days):")
        print(token)
        print("\nAPI Documentation: http://localhost:8001/docs")
        print("=" * 60)

    except Exception as e:
        print(f"\nError during seeding: {str(e)}")
        raise
    finally:
        client.close()


if __name__ == "__main__":
    asyncio.run(seed_database())
