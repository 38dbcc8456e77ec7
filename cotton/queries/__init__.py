"""Deterministic queries over cached finance data."""

from cotton.queries.summary import (
    CategoryTotal,
    ContactTotal,
    MonthlyTrend,
    ProjectSummary,
    ProjectSummaryQuery,
    SummaryError,
    amount_for_project,
    summarize_project,
)

__all__ = [
    "CategoryTotal",
    "ContactTotal",
    "MonthlyTrend",
    "ProjectSummary",
    "ProjectSummaryQuery",
    "SummaryError",
    "amount_for_project",
    "summarize_project",
]
