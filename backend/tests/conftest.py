"""
Shared fixtures: an in-memory MongoDB (mongomock) behind the Motor API
(mongomock_motor), plus factories for actors, clients, employees and projects.
"""
from datetime import datetime

import mongomock
import pytest
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient

TEST_DB_NAME = "business_ledger_test"


@pytest.fixture
def mongo_client():
    return mongomock.MongoClient()


@pytest.fixture
def mongo(mongo_client):
    """Synchronous handle for arranging and inspecting data"""
    return mongo_client[TEST_DB_NAME]


@pytest.fixture
def db(mongo_client):
    """Motor-shaped handle over the same in-memory store"""
    return AsyncMongoMockClient(mock_mongo_client=mongo_client)[TEST_DB_NAME]


@pytest.fixture
def actor_id(mongo):
    result = mongo.users.insert_one({
        "name": "Test Admin",
        "email": "admin@test.example",
        "is_active": True,
        "created_at": datetime.utcnow()
    })
    return str(result.inserted_id)


@pytest.fixture
def make_employee(mongo):
    counter = {"n": 0}

    def _make(name=None, is_active=True):
        counter["n"] += 1
        result = mongo.employees.insert_one({
            "name": name or f"Employee {counter['n']}",
            "email": f"employee{counter['n']}@test.example",
            "position": "Developer",
            "department": "Engineering",
            "serial_id": counter["n"],
            "is_active": is_active,
            "created_at": datetime.utcnow()
        })
        return str(result.inserted_id)
    return _make


@pytest.fixture
def client_id(mongo):
    result = mongo.clients.insert_one({
        "name": "Dana Client",
        "company_name": "Northwind",
        "email": "dana@northwind.example",
        "serial_id": 1,
        "is_active": True,
        "created_at": datetime.utcnow()
    })
    return str(result.inserted_id)


@pytest.fixture
def make_project(mongo, client_id):
    """
    Insert a project directly. ``employees`` is a list of
    (employee_id, compensation) pairs; any other keyword sets that field.
    """
    counter = {"n": 0}

    def _make(budget=0, deposit=0, employees=(), status="active", is_active=True, name=None, **fields):
        counter["n"] += 1
        project = {
            "name": name or f"Project {counter['n']}",
            "description": "Test project",
            "client_id": client_id,
            "budget": budget,
            "deposit": deposit,
            "start_date": datetime(2024, 1, counter["n"] % 28 + 1),
            "status": status,
            "employees": [
                {
                    "assignment_id": str(ObjectId()),
                    "employee_id": employee_id,
                    "role": "Developer",
                    "compensation": compensation,
                    "hours_worked": 0,
                }
                for employee_id, compensation in employees
            ],
            "service_ids": [],
            "client_installments": [],
            "employee_payments": [],
            "expenses": [],
            "serial_id": counter["n"],
            "is_active": is_active,
            "created_at": datetime.utcnow(),
            "updated_at": datetime.utcnow()
        }
        project.update(fields)
        result = mongo.projects.insert_one(project)
        return str(result.inserted_id)
    return _make
