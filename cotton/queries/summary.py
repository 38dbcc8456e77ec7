"""
Project Summary Engine

DESIGN DECISION: Summaries are DETERMINISTIC and computed from cached data.
Totals, category breakdowns and monthly trends are derived only from
the transactions the cache holds. Nothing is estimated: a project
with no transactions reports zeros, not guesses.

All amounts are INR-normalized (Transaction.reporting_amount).
"""

from datetime import date
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from cotton.cache import FinanceCache
from cotton.models.finance import (
    Category,
    Contact,
    Project,
    Transaction,
    TransactionType,
)


UNCATEGORIZED_ID = "uncategorized"
UNCATEGORIZED_COLOR = "#94A3B8"
TOP_N = 5


# =============================================================================
# RESULT MODELS
# =============================================================================

class CategoryTotal(BaseModel):
    """Expense total for one category."""
    id: str
    name: str
    color: str = UNCATEGORIZED_COLOR
    amount: float = 0.0
    percentage: float = Field(
        default=0.0,
        description="Share of the project's total expenses"
    )


class ContactTotal(BaseModel):
    """Money moved with one contact."""
    id: str
    name: Optional[str] = None
    amount: float = 0.0
    count: int = 0


class MonthlyTrend(BaseModel):
    """Income and expenses for one calendar month."""
    month: str = Field(..., description="YYYY-MM")
    income: float = 0.0
    expenses: float = 0.0

    @property
    def net(self) -> float:
        return self.income - self.expenses


class ProjectSummary(BaseModel):
    """Financial summary of one project."""
    project_id: str
    project_name: str
    total_income: float = 0.0
    total_expenses: float = 0.0
    transaction_count: int = 0
    employee_count: int = 0
    top_categories: list[CategoryTotal] = Field(default_factory=list)
    top_contacts: list[ContactTotal] = Field(default_factory=list)
    monthly_trend: list[MonthlyTrend] = Field(
        default_factory=list,
        description="Oldest month first"
    )

    @property
    def net_amount(self) -> float:
        return self.total_income - self.total_expenses


class SummaryError(Exception):
    """Error while building a summary."""
    pass


# =============================================================================
# COMPUTATION
# =============================================================================

def amount_for_project(transaction: Transaction, project_id: str) -> float:
    """
    INR amount a transaction contributes to a project.

    A transaction assigned to the project counts in full. A shared
    expense counts only the share allocated to the project.
    """
    if transaction.project_id == project_id:
        return transaction.reporting_amount

    allocated = sum(
        allocation.amount
        for allocation in transaction.allocations
        if allocation.project_id == project_id
    )
    if not allocated:
        return 0.0
    # Allocations are in the transaction's currency
    return allocated * transaction.reporting_amount / transaction.amount


def summarize_project(
    project: Project,
    transactions: Iterable[Transaction],
    categories: Iterable[Category] = (),
    contacts: Iterable[Contact] = (),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    top_n: int = TOP_N,
) -> ProjectSummary:
    """
    Build a ProjectSummary from already-loaded entities.

    Args:
        project: The project to summarize
        transactions: Candidate transactions (others are ignored)
        categories: Used for category colors and names
        contacts: Used to count the project's employees
        start_date: Inclusive lower bound on transaction date
        end_date: Inclusive upper bound on transaction date
        top_n: How many categories/contacts to report
    """
    category_lookup = {c.id: c for c in categories}

    total_income = 0.0
    total_expenses = 0.0
    count = 0
    category_totals: dict[str, CategoryTotal] = {}
    contact_totals: dict[str, ContactTotal] = {}
    monthly: dict[str, MonthlyTrend] = {}

    for t in transactions:
        day = t.date.date()
        if start_date and day < start_date:
            continue
        if end_date and day > end_date:
            continue

        amount = amount_for_project(t, project.id)
        if amount <= 0:
            continue
        count += 1

        month_key = t.date.strftime("%Y-%m")
        if month_key not in monthly:
            monthly[month_key] = MonthlyTrend(month=month_key)
        trend = monthly[month_key]

        if t.type == TransactionType.INCOME:
            total_income += amount
            trend.income += amount
        else:
            total_expenses += amount
            trend.expenses += amount

            category_id = t.category_id or UNCATEGORIZED_ID
            if category_id not in category_totals:
                category = category_lookup.get(category_id)
                category_totals[category_id] = CategoryTotal(
                    id=category_id,
                    name=t.category_name or (category.name if category else "Uncategorized"),
                    color=category.color if category else UNCATEGORIZED_COLOR,
                )
            category_totals[category_id].amount += amount

        if t.contact_id:
            if t.contact_id not in contact_totals:
                contact_totals[t.contact_id] = ContactTotal(
                    id=t.contact_id, name=t.contact_name
                )
            contact_totals[t.contact_id].amount += amount
            contact_totals[t.contact_id].count += 1

    top_categories = sorted(category_totals.values(), key=lambda c: c.amount, reverse=True)[:top_n]
    for category_total in top_categories:
        if total_expenses > 0:
            category_total.percentage = category_total.amount / total_expenses * 100

    employee_count = sum(
        1 for c in contacts
        if c.is_employee and c.project_id == project.id
    )

    return ProjectSummary(
        project_id=project.id,
        project_name=project.name,
        total_income=total_income,
        total_expenses=total_expenses,
        transaction_count=count,
        employee_count=employee_count,
        top_categories=top_categories,
        top_contacts=sorted(contact_totals.values(), key=lambda c: c.amount, reverse=True)[:top_n],
        monthly_trend=sorted(monthly.values(), key=lambda m: m.month),
    )


class ProjectSummaryQuery:
    """
    Summaries over the finance cache.

    GUARANTEES:
    - Reads go through ensure_fresh(), so no extra fetch when fresh
    - A failed refresh falls back to the last known snapshot
    - An unknown project is an error, never an empty summary
    """

    def __init__(self, cache: FinanceCache):
        self._cache = cache

    async def summarize(
        self,
        project_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> ProjectSummary:
        projects = await self._cache.ensure_fresh("projects")
        project = next((p for p in projects.data if p.id == project_id), None)
        if project is None:
            raise SummaryError(f"Project not found: {project_id}")

        transactions = await self._cache.ensure_fresh("transactions")
        categories = await self._cache.ensure_fresh("categories")
        contacts = await self._cache.ensure_fresh("contacts")

        return summarize_project(
            project,
            transactions.data,
            categories=categories.data,
            contacts=contacts.data,
            start_date=start_date,
            end_date=end_date,
        )
