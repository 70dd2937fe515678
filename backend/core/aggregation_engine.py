"""
AGGREGATION ENGINE

Derives every financial figure of a project from its persisted ledger and
rolls many projects up into company-wide and dashboard reports.

LOCKED FORMULAS (Decimal internally, rounded to 2 places at the boundary):
- money_collected = deposit + SUM(client_installments.amount)
- money_paid = SUM(employee_payments.amount)
- total_expenses = SUM(expenses.amount)
- total_employee_compensation = SUM(employees.compensation)
- total_cost = total_employee_compensation + total_expenses
- gross_profit = budget - total_employee_compensation
- net_profit_to_date = money_collected - money_paid - total_expenses
- client_balance_due = max(0, budget - money_collected)
- employee_balance_due = max(0, total_employee_compensation - money_paid)
- collection_rate = money_collected / budget (0 when budget is 0)

Nothing here is cached or written back. NO writes. NO mutations.

Usage:
    engine = AggregationEngine(db)
    summary = await engine.summarize(project_id)
    report = await engine.company_report({"status": "active"})
    analytics = await engine.financial_analytics(datetime(2024, 1, 1), datetime(2024, 3, 31))
"""

from motor.motor_asyncio import AsyncIOMotorDatabase
from decimal import Decimal
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
import logging
import asyncio

from core.entity_directory import EntityDirectory, build_project_query, parse_object_id
from core.errors import LedgerValidationError, NotFoundError
from core.ledger_models import naive_utc
from core.financial_precision import (
    to_decimal, to_float, safe_add, safe_subtract, floor_at_zero,
    sum_field, ratio, percentage, whole_average
)
from core.serialization import serialize_doc, serialize_value

logger = logging.getLogger(__name__)


# =============================================================================
# PURE DERIVATIONS
# =============================================================================

def compute_financial_summary(project: Dict[str, Any]) -> Dict[str, Any]:
    """Financial summary of one project snapshot. Pure function of the document."""
    budget = to_decimal(project.get("budget"))
    deposit = to_decimal(project.get("deposit"))
    installments = project.get("client_installments") or []
    payments = project.get("employee_payments") or []
    expenses = project.get("expenses") or []

    money_collected = safe_add(deposit, sum_field(installments))
    money_paid = sum_field(payments)
    total_expenses = sum_field(expenses)
    total_compensation = sum_field(project.get("employees") or [], "compensation")

    net_profit = safe_subtract(safe_subtract(money_collected, money_paid), total_expenses)

    return {
        "project_id": str(project["_id"]) if project.get("_id") is not None else None,
        "serial_id": project.get("serial_id"),
        "budget": to_float(budget),
        "deposit": to_float(deposit),
        "money_collected": to_float(money_collected),
        "money_paid": to_float(money_paid),
        "total_expenses": to_float(total_expenses),
        "total_employee_compensation": to_float(total_compensation),
        "total_cost": to_float(safe_add(total_compensation, total_expenses)),
        "gross_profit": to_float(safe_subtract(budget, total_compensation)),
        "net_profit_to_date": to_float(net_profit),
        "client_balance_due": to_float(floor_at_zero(safe_subtract(budget, money_collected))),
        "employee_balance_due": to_float(floor_at_zero(safe_subtract(total_compensation, money_paid))),
        "collection_rate": ratio(money_collected, budget),
        "installment_count": len(installments),
        "employee_payment_count": len(payments),
        "expense_count": len(expenses),
    }


def payment_status(compensation: Decimal, paid: Decimal) -> str:
    if paid <= 0:
        return "pending"
    if paid >= compensation:
        return "paid"
    return "partial"


def compute_employee_breakdown(project: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Per roster assignment: what was promised, what was paid, and the derived status."""
    paid_by_employee: Dict[str, Decimal] = {}
    for payment in project.get("employee_payments") or []:
        key = str(payment.get("employee_id"))
        paid_by_employee[key] = paid_by_employee.get(key, Decimal('0')) + to_decimal(payment.get("amount"))

    breakdown = []
    for assignment in project.get("employees") or []:
        employee_id = str(assignment.get("employee_id"))
        compensation = to_decimal(assignment.get("compensation"))
        paid = paid_by_employee.get(employee_id, Decimal('0'))
        breakdown.append({
            "assignment_id": assignment.get("assignment_id"),
            "employee_id": employee_id,
            "role": assignment.get("role"),
            "compensation": to_float(compensation),
            "hours_worked": assignment.get("hours_worked", 0),
            "amount_paid": to_float(paid),
            "balance_due": to_float(floor_at_zero(compensation - paid)),
            "payment_status": payment_status(compensation, paid),
        })
    return breakdown


def build_project_view(
    project: Dict[str, Any],
    employees_by_id: Optional[Dict[str, Dict[str, Any]]] = None
) -> Dict[str, Any]:
    """Serialized project with derived financials and roster breakdown"""
    view = serialize_doc(project)
    roster = compute_employee_breakdown(project)
    if employees_by_id:
        for entry in roster:
            employee = employees_by_id.get(entry["employee_id"]) or {}
            entry["name"] = employee.get("name", "Unknown")
            entry["email"] = employee.get("email")
    view["employees"] = roster
    view["financials"] = compute_financial_summary(project)
    return view


def _client_info(client: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not client:
        return None
    return {
        "id": str(client["_id"]),
        "serial_id": client.get("serial_id"),
        "name": client.get("name"),
        "company_name": client.get("company_name"),
        "email": client.get("email"),
    }


def _employee_info(assignment: Dict[str, Any], employee: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    employee = employee or {}
    return {
        "id": str(assignment.get("employee_id")),
        "serial_id": employee.get("serial_id"),
        "name": employee.get("name", "Unknown"),
        "email": employee.get("email"),
        "position": employee.get("position") or "Not specified",
        "department": employee.get("department") or "Not assigned",
    }


def unique_employees(entries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """De-duplicate by employee id; first occurrence wins"""
    seen: Dict[str, Dict[str, Any]] = {}
    for entry in entries:
        if entry.get("id") and entry["id"] not in seen:
            seen[entry["id"]] = entry
    return list(seen.values())


def roll_up_totals(summaries: List[Dict[str, Any]], employee_count: int) -> Dict[str, Any]:
    """Company-wide totals over per-project summaries"""
    total_budget = sum((to_decimal(s["budget"]) for s in summaries), Decimal('0'))
    total_collected = sum((to_decimal(s["money_collected"]) for s in summaries), Decimal('0'))
    total_paid = sum((to_decimal(s["money_paid"]) for s in summaries), Decimal('0'))
    total_expenses = sum((to_decimal(s["total_expenses"]) for s in summaries), Decimal('0'))
    total_compensation = sum((to_decimal(s["total_employee_compensation"]) for s in summaries), Decimal('0'))
    total_profit = sum((to_decimal(s["net_profit_to_date"]) for s in summaries), Decimal('0'))
    count = len(summaries)

    return {
        "total_projects": count,
        "total_budget": to_float(total_budget),
        "total_collected": to_float(total_collected),
        "total_paid": to_float(total_paid),
        "total_expenses": to_float(total_expenses),
        "total_employee_compensation": to_float(total_compensation),
        "total_profit": to_float(total_profit),
        "outstanding_clients": to_float(floor_at_zero(total_budget - total_collected)),
        "outstanding_employees": to_float(floor_at_zero(total_compensation - total_paid)),
        "collection_rate": ratio(total_collected, total_budget),
        "average_profit_per_project": to_float(total_profit / count) if count else 0.0,
        "average_employees_per_project": whole_average(employee_count, count),
    }


IN_FLIGHT_STATUSES = ("planning", "active", "on_hold")


def sum_in_window(items: List[Dict[str, Any]], start: datetime, end: datetime) -> Decimal:
    """SUM(amount) over entries dated in [start, end); undated entries are skipped"""
    total = Decimal('0')
    for item in items or []:
        date = item.get("date")
        if date is not None and start <= date < end:
            total += to_decimal(item.get("amount"))
    return total


def flatten_client_payments(
    project: Dict[str, Any],
    client: Optional[Dict[str, Any]] = None
) -> List[Dict[str, Any]]:
    """
    Money received on one project as flat history rows: the deposit (dated at
    project creation) followed by every client installment in append order.
    A zero deposit is not a payment and is left out.
    """
    client = client or {}
    base = {
        "project_id": str(project["_id"]),
        "serial_id": project.get("serial_id"),
        "project_name": project.get("name"),
        "client": client.get("company_name") or client.get("name") or "Unknown",
    }

    rows = []
    deposit = to_decimal(project.get("deposit"))
    if deposit:
        rows.append(dict(
            base,
            type="deposit",
            transaction_id=None,
            amount=to_float(deposit),
            date=project.get("created_at") or project.get("start_date"),
            method="initial",
            reference=None,
            note=None,
        ))
    for installment in project.get("client_installments") or []:
        rows.append(dict(
            base,
            type="installment",
            transaction_id=installment.get("transaction_id"),
            amount=to_float(installment.get("amount")),
            date=installment.get("date"),
            method=installment.get("method"),
            reference=installment.get("reference"),
            note=installment.get("note"),
        ))
    return rows


# =============================================================================
# AGGREGATION ENGINE
# =============================================================================

class AggregationEngine:
    """
    Read-only report builder.

    Per-project failures inside company_report / dashboard are logged and the
    project is left out of the roll-up; the report itself never fails for them.
    """

    DASHBOARD_LIMIT = 10
    REPORT_LIMIT = 1000

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        directory: Optional[EntityDirectory] = None,
        dashboard_limit: Optional[int] = None,
        report_limit: Optional[int] = None
    ):
        self.db = db
        self.directory = directory or EntityDirectory(db)
        self.dashboard_limit = dashboard_limit or self.DASHBOARD_LIMIT
        self.report_limit = report_limit or self.REPORT_LIMIT

    def summarize_document(self, project: Dict[str, Any]) -> Dict[str, Any]:
        return compute_financial_summary(project)

    async def summarize(self, project_id: str) -> Dict[str, Any]:
        """Fresh financial summary for one active project (NotFoundError otherwise)"""
        project = await self.directory.get_project(project_id)
        return self.summarize_document(project)

    async def project_view(self, project_id: str, include_inactive: bool = False) -> Dict[str, Any]:
        project = await self.directory.get_project(project_id, include_inactive=include_inactive)
        employees = await self.directory.employees_by_id(
            a.get("employee_id") for a in project.get("employees") or []
        )
        return build_project_view(project, employees)

    # =========================================================================
    # SINGLE PROJECT REPORT
    # =========================================================================

    async def project_report(self, project_id: str) -> Dict[str, Any]:
        """
        Full finance report for one project: header, client, financials,
        roster breakdown and every transaction with display names.
        """
        project = await self.directory.get_project(project_id)
        financials = self.summarize_document(project)

        installments = project.get("client_installments") or []
        payments = project.get("employee_payments") or []
        expenses = project.get("expenses") or []

        employee_ids = [a.get("employee_id") for a in project.get("employees") or []]
        employee_ids += [p.get("employee_id") for p in payments]
        employees = await self.directory.employees_by_id(employee_ids)
        actors = await self.directory.users_by_id(
            t.get("recorded_by") for t in installments + payments + expenses
        )
        clients = await self.directory.clients_by_id([project.get("client_id")])

        def recorder(transaction):
            return (actors.get(str(transaction.get("recorded_by"))) or {}).get("name", "Unknown")

        roster = []
        for entry, assignment in zip(compute_employee_breakdown(project), project.get("employees") or []):
            info = _employee_info(assignment, employees.get(entry["employee_id"]))
            info["assignment"] = entry
            roster.append(info)

        transactions = {
            "client_installments": [
                dict(serialize_doc(t), recorded_by_name=recorder(t)) for t in installments
            ],
            "employee_payments": [
                dict(
                    serialize_doc(t),
                    employee_name=(employees.get(str(t.get("employee_id"))) or {}).get("name", "Unknown"),
                    recorded_by_name=recorder(t)
                )
                for t in payments
            ],
            "expenses": [
                dict(serialize_doc(t), recorded_by_name=recorder(t)) for t in expenses
            ],
        }

        return {
            "project": {
                "id": str(project["_id"]),
                "serial_id": project.get("serial_id"),
                "name": project.get("name"),
                "description": project.get("description"),
                "client": _client_info(clients.get(str(project.get("client_id")))),
                "budget": financials["budget"],
                "deposit": financials["deposit"],
                "status": project.get("status"),
                "start_date": serialize_value(project.get("start_date")),
                "end_date": serialize_value(project.get("end_date")),
                "created_at": serialize_value(project.get("created_at")),
            },
            "financials": financials,
            "employees": roster,
            "transactions": transactions,
            "summary": {
                "total_employees": len(roster),
                "total_transactions": len(installments) + len(payments) + len(expenses),
                "net_cash_flow": financials["net_profit_to_date"],
                "collection_rate": percentage(financials["money_collected"], financials["budget"]),
                "cost_rate": percentage(financials["total_cost"], financials["budget"]),
            },
        }

    # =========================================================================
    # ROLL-UPS
    # =========================================================================

    async def _summarize_safely(self, project: Dict[str, Any]) -> Optional[Tuple[Dict[str, Any], Dict[str, Any]]]:
        try:
            return project, self.summarize_document(project)
        except Exception as e:
            logger.error(f"[REPORT] Error getting financials for project {project.get('_id')}: {str(e)}")
            return None

    async def _summarize_all(self, projects: List[Dict[str, Any]]) -> List[Tuple[Dict[str, Any], Dict[str, Any]]]:
        results = await asyncio.gather(*(self._summarize_safely(p) for p in projects))
        return [r for r in results if r is not None]

    async def _lookups(self, projects: List[Dict[str, Any]]):
        employee_ids = [
            a.get("employee_id") for p in projects for a in p.get("employees") or []
        ]
        employees = await self.directory.employees_by_id(employee_ids)
        clients = await self.directory.clients_by_id(p.get("client_id") for p in projects)
        return employees, clients

    async def company_report(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Company-wide roll-up over every project matching ``filters``
        (inactive projects included unless filtered out).
        """
        projects = await self.directory.find_projects(
            build_project_query(filters), limit=self.report_limit
        )
        summarized = await self._summarize_all(projects)
        employees, clients = await self._lookups([p for p, _ in summarized])

        entries = []
        all_employees = []
        employee_count = 0
        for project, summary in summarized:
            roster = []
            for entry, assignment in zip(compute_employee_breakdown(project), project.get("employees") or []):
                info = _employee_info(assignment, employees.get(entry["employee_id"]))
                info["assignment"] = {
                    "compensation": entry["compensation"],
                    "hours_worked": entry["hours_worked"],
                    "role": entry["role"],
                    "payment_status": entry["payment_status"],
                }
                roster.append(info)

            employee_count += len(roster)
            all_employees.extend(roster)
            entries.append(dict(
                summary,
                name=project.get("name"),
                status=project.get("status"),
                is_active=project.get("is_active", True),
                client=_client_info(clients.get(str(project.get("client_id")))),
                employee_count=len(roster),
                employees=roster,
            ))

        roster = unique_employees(all_employees)
        totals = roll_up_totals([s for _, s in summarized], employee_count)
        totals.update({
            "total_employees": employee_count,
            "unique_employees": len(roster),
            "excluded_projects": len(projects) - len(summarized),
        })

        logger.info(
            f"[REPORT] Company report: {len(summarized)} projects, "
            f"{len(projects) - len(summarized)} excluded"
        )
        return {"summary": totals, "projects": entries, "employees": roster}

    async def dashboard(self) -> Dict[str, Any]:
        """At-a-glance roll-up of active, in-flight projects (newest first, size limited)"""
        projects = await self.directory.find_projects(
            {"status": "active", "is_active": {"$ne": False}}, limit=self.dashboard_limit
        )
        summarized = await self._summarize_all(projects)
        employees, clients = await self._lookups([p for p, _ in summarized])

        recent = []
        all_employees = []
        total_cash_in = Decimal('0')
        total_cash_out = Decimal('0')
        employee_count = 0

        for project, summary in summarized:
            roster = [
                _employee_info(a, employees.get(str(a.get("employee_id"))))
                for a in project.get("employees") or []
            ]
            all_employees.extend(roster)
            employee_count += len(roster)
            total_cash_in += to_decimal(summary["money_collected"])
            total_cash_out += to_decimal(summary["money_paid"]) + to_decimal(summary["total_expenses"])

            recent.append({
                "project_id": summary["project_id"],
                "serial_id": summary["serial_id"],
                "name": project.get("name"),
                "client": _client_info(clients.get(str(project.get("client_id")))),
                "budget": summary["budget"],
                "status": project.get("status"),
                "employee_count": len(roster),
                "employees": roster,
                "money_collected": summary["money_collected"],
                "money_paid": summary["money_paid"],
                "total_expenses": summary["total_expenses"],
                "net_profit_to_date": summary["net_profit_to_date"],
                "client_balance_due": summary["client_balance_due"],
            })

        roster = unique_employees(all_employees)
        return {
            "quick_stats": {
                "active_projects": len(recent),
                "active_employees": employee_count,
                "unique_active_employees": len(roster),
                "total_cash_in": to_float(total_cash_in),
                "total_cash_out": to_float(total_cash_out),
                "net_cash_flow": to_float(total_cash_in - total_cash_out),
                "avg_employees_per_project": whole_average(employee_count, len(recent)),
                "excluded_projects": len(projects) - len(summarized),
            },
            "totals": roll_up_totals([s for _, s in summarized], employee_count),
            "recent_projects": recent,
            "employees": {
                "total_active": employee_count,
                "unique_active": len(roster),
                "list": roster,
            },
        }

    # =========================================================================
    # DATE-WINDOWED REPORTS
    # =========================================================================

    async def financial_analytics(self, start_date: datetime, end_date: datetime) -> Dict[str, Any]:
        """
        Cash movement inside a date window, over projects in flight during it.

        A project is in flight when its status is planning, active or on hold,
        it started before the window closed and it had not ended before the
        window opened. Both bounds are whole days: ``end_date`` is inclusive.

        Budget, cost and gross profit are whole-project figures. Collected,
        paid and expenses only count ledger entries dated inside the window;
        the deposit counts when the project was created inside it.
        """
        start = naive_utc(start_date)
        end = naive_utc(end_date)
        if end < start:
            raise LedgerValidationError(
                "end_date must not be before start_date",
                {"start_date": start.isoformat(), "end_date": end.isoformat()}
            )
        window_end = end + timedelta(days=1)

        projects = await self.directory.find_projects(
            {
                "status": {"$in": list(IN_FLIGHT_STATUSES)},
                "is_active": {"$ne": False},
                "start_date": {"$lt": window_end},
                "$or": [{"end_date": None}, {"end_date": {"$gte": start}}],
            },
            limit=self.report_limit
        )
        summarized = await self._summarize_all(projects)

        project_count = 0
        totals = {
            "total_budget": Decimal('0'),
            "total_cost": Decimal('0'),
            "total_gross_profit": Decimal('0'),
            "money_collected": Decimal('0'),
            "money_paid": Decimal('0'),
            "expenses": Decimal('0'),
        }
        by_status: Dict[str, Dict[str, Any]] = {}

        for project, summary in summarized:
            collected = sum_in_window(project.get("client_installments"), start, window_end)
            created = project.get("created_at")
            if created is not None and start <= created < window_end:
                collected += to_decimal(project.get("deposit"))
            paid = sum_in_window(project.get("employee_payments"), start, window_end)
            spent = sum_in_window(project.get("expenses"), start, window_end)

            status = project.get("status")
            bucket = by_status.setdefault(
                status, {"project_count": 0, "money_collected": Decimal('0'), "money_paid": Decimal('0')}
            )
            bucket["project_count"] += 1
            bucket["money_collected"] += collected
            bucket["money_paid"] += paid

            project_count += 1
            totals["total_budget"] += to_decimal(summary["budget"])
            totals["total_cost"] += to_decimal(summary["total_cost"])
            totals["total_gross_profit"] += to_decimal(summary["gross_profit"])
            totals["money_collected"] += collected
            totals["money_paid"] += paid
            totals["expenses"] += spent

        net = totals["money_collected"] - totals["money_paid"] - totals["expenses"]
        logger.info(
            f"[REPORT] Financial analytics {start.date()}..{end.date()}: "
            f"{project_count} projects in flight"
        )
        return {
            "window": {"start_date": serialize_value(start), "end_date": serialize_value(end)},
            "overview": dict(
                {k: to_float(v) for k, v in totals.items()},
                total_projects=project_count,
                net_cash_flow=to_float(net),
                excluded_projects=len(projects) - len(summarized),
            ),
            "by_status": [
                {
                    "status": status,
                    "project_count": bucket["project_count"],
                    "money_collected": to_float(bucket["money_collected"]),
                    "money_paid": to_float(bucket["money_paid"]),
                    "net_cash_flow": to_float(bucket["money_collected"] - bucket["money_paid"]),
                }
                for status, bucket in sorted(by_status.items(), key=lambda item: str(item[0]))
            ],
        }

    async def payment_history(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Every client payment (deposit and installments) across projects,
        newest first. Optional filters: project_id, start_date, end_date
        (both bounds inclusive).
        """
        filters = filters or {}
        start = naive_utc(filters.get("start_date"))
        end = naive_utc(filters.get("end_date"))
        if start and end and end < start:
            raise LedgerValidationError("end_date must not be before start_date")

        if filters.get("project_id"):
            oid = parse_object_id(filters["project_id"])
            if oid is None:
                raise NotFoundError("Project not found", {"project_id": str(filters["project_id"])})
            query: Dict[str, Any] = {"_id": oid, "is_active": {"$ne": False}}
        else:
            query = {"is_active": {"$ne": False}}

        projects = await self.directory.find_projects(query, limit=self.report_limit)
        if filters.get("project_id") and not projects:
            raise NotFoundError("Project not found", {"project_id": str(filters["project_id"])})
        clients = await self.directory.clients_by_id(p.get("client_id") for p in projects)

        rows = []
        for project in projects:
            rows.extend(flatten_client_payments(project, clients.get(str(project.get("client_id")))))

        if start or end:
            rows = [
                r for r in rows
                if r["date"] is not None
                and (start is None or r["date"] >= start)
                and (end is None or r["date"] <= end)
            ]
        rows.sort(key=lambda r: r["date"] or datetime.min, reverse=True)

        total = sum((to_decimal(r["amount"]) for r in rows), Decimal('0'))
        return {
            "payments": [dict(r, date=serialize_value(r["date"])) for r in rows],
            "summary": {
                "total_payments": len(rows),
                "total_amount": to_float(total),
                "average_payment": to_float(total / len(rows)) if rows else 0.0,
            },
        }
