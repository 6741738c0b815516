import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Hashable, Iterator, Mapping, NamedTuple, Optional

from budgetbuddy.aggregate import as_amount, by_category, period_summary, summarize, trailing_series
from budgetbuddy.dates import iso_day
from budgetbuddy.domain import (
    BudgetSetting,
    BudgetStatus,
    CategoryTotal,
    ExpenseRecord,
    Insert,
    ListSummary,
    Remove,
    Replace,
    SeriesPoint,
    Summary,
)
from budgetbuddy.errors import AuthError, ConflictError, ValidationError
from budgetbuddy.functional import Either, Left, Right, attempt
from budgetbuddy.listview import ExpenseListView, apply_sort
from budgetbuddy.session import SessionContext
from budgetbuddy.store import ExpenseStore
from budgetbuddy.validation import validate_expense_fields, validate_patch

logger = logging.getLogger(__name__)

WINDOWS = {"day": 7, "month": 6}
RECENT_LIMIT = 5


class Ticket(NamedTuple):
    generation: int
    params: Hashable


class RequestGuard:
    """Tags fetches so a response for superseded parameters can be dropped."""

    def __init__(self):
        self._generation = 0
        self._params: Hashable = None

    def issue(self, params: Hashable = None) -> Ticket:
        self._generation += 1
        self._params = params
        return Ticket(self._generation, params)

    def is_current(self, ticket: Ticket) -> bool:
        return ticket.generation == self._generation and ticket.params == self._params


class InFlight:
    """Record ids with a mutation awaiting the store."""

    def __init__(self):
        self._ids: set[str] = set()

    def __contains__(self, record_id: str) -> bool:
        return record_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    @contextmanager
    def claim(self, record_id: str) -> Iterator[None]:
        if record_id in self._ids:
            raise ConflictError(f"A change to {record_id} is already in progress", id=record_id)
        self._ids.add(record_id)
        try:
            yield
        finally:
            self._ids.discard(record_id)


def _owner(session: SessionContext) -> Either[AuthError, str]:
    try:
        return Right(session.owner_id)
    except AuthError as e:
        return Left(e)


def budget_status(summary: Summary, setting: BudgetSetting) -> BudgetStatus:
    return BudgetStatus(
        monthly_budget=setting.monthly_budget,
        weekly_budget=setting.weekly_budget,
        spent_month=summary.this_month,
        spent_week=summary.this_week,
    )


@dataclass(frozen=True)
class DashboardReport:
    summary: Summary
    entries: int
    categories: tuple[CategoryTotal, ...]
    series: tuple[SeriesPoint, ...]
    granularity: str
    recent: tuple[ExpenseRecord, ...]
    budget: BudgetStatus
    last_month: ListSummary


class DashboardService:
    """Loads everything the dashboard shows in one go.

    The expense list and the budget row are fetched concurrently; the report
    is only built once both have resolved.
    """

    def __init__(self, store: ExpenseStore, session: SessionContext):
        self.store = store
        self.session = session
        self.guard = RequestGuard()

    async def load(
        self,
        now: datetime | date | str,
        granularity: str = "day",
    ) -> Optional[Either[Exception, DashboardReport]]:
        if granularity not in WINDOWS:
            raise ValueError(f"Unknown granularity: {granularity!r}")
        owner = _owner(self.session)
        if owner.is_left():
            return owner
        owner_id = owner.get_or_else(None)

        ticket = self.guard.issue((owner_id, granularity, iso_day(now)))
        expenses, setting = await asyncio.gather(
            attempt(self.store.list_expenses(owner_id)),
            attempt(self.store.get_budget_setting(owner_id)),
        )
        if not self.guard.is_current(ticket):
            logger.debug("Dropping superseded dashboard load %s", ticket)
            return None
        for result in (expenses, setting):
            if result.is_left():
                logger.error("Dashboard fetch failed: %s", result.get_error())
                return result

        records = expenses.get_or_else(())
        budget = setting.get_or_else(None) or BudgetSetting(owner_id=owner_id)
        summary = summarize(records, now)
        return Right(DashboardReport(
            summary=summary,
            entries=len(records),
            categories=by_category(records),
            series=trailing_series(records, now, granularity, WINDOWS[granularity]),
            granularity=granularity,
            recent=apply_sort(records)[:RECENT_LIMIT],
            budget=budget_status(summary, budget),
            last_month=period_summary(records, now, "month"),
        ))


class ExpenseListController:
    """Connects the list view to the store.

    Local state changes only after the store confirms a mutation; a failed
    call leaves the working set exactly as it was.
    """

    NEW = "__new__"

    def __init__(self, store: ExpenseStore, session: SessionContext, view: Optional[ExpenseListView] = None):
        self.store = store
        self.session = session
        self.view = view or ExpenseListView()
        self.guard = RequestGuard()
        self.in_flight = InFlight()

    async def refresh(self) -> Optional[Either[Exception, tuple[ExpenseRecord, ...]]]:
        owner = _owner(self.session)
        if owner.is_left():
            return owner
        owner_id = owner.get_or_else(None)
        ticket = self.guard.issue(owner_id)
        result = await attempt(self.store.list_expenses(owner_id))
        if not self.guard.is_current(ticket):
            logger.debug("Dropping superseded expense fetch %s", ticket)
            return None
        if result.is_right():
            self.view.load(result.get_or_else(()))
        else:
            logger.error("Failed to fetch expenses: %s", result.get_error())
        return result

    def is_busy(self, expense_id: str) -> bool:
        return expense_id in self.in_flight

    async def _mutate(self, key: str, call_factory) -> Either[Exception, Any]:
        owner = _owner(self.session)
        if owner.is_left():
            return owner
        try:
            with self.in_flight.claim(key):
                return await attempt(call_factory(owner.get_or_else(None)))
        except ConflictError as e:
            logger.warning("Rejected mutation: %s", e)
            return Left(e)

    async def create(self, fields: Mapping[str, Any]) -> Either[Exception, ExpenseRecord]:
        checked = validate_expense_fields(fields)
        if checked.is_left():
            return checked
        result = await self._mutate(
            self.NEW, lambda owner_id: self.store.insert_expense(owner_id, checked.get_or_else({}))
        )
        if result.is_right():
            self.view.patch(Insert(result.get_or_else(None)))
        return result

    async def update(self, expense_id: str, patch: Mapping[str, Any]) -> Either[Exception, ExpenseRecord]:
        checked = validate_patch(patch)
        if checked.is_left():
            return checked
        result = await self._mutate(
            expense_id,
            lambda owner_id: self.store.update_expense(expense_id, owner_id, checked.get_or_else({})),
        )
        if result.is_right():
            updated = result.get_or_else(None)
            changed = {name: getattr(updated, name) for name in (*checked.get_or_else({}), "updated_at")}
            self.view.patch(Replace(expense_id, changed))
        return result

    async def delete(self, expense_id: str) -> Either[Exception, str]:
        result = await self._mutate(
            expense_id, lambda owner_id: self.store.delete_expense(expense_id, owner_id)
        )
        if result.is_right():
            self.view.patch(Remove(expense_id))
        return result.map(lambda _: expense_id)


class BudgetService:

    def __init__(self, store: ExpenseStore, session: SessionContext):
        self.store = store
        self.session = session

    async def current(self) -> Either[Exception, BudgetSetting]:
        owner = _owner(self.session)
        if owner.is_left():
            return owner
        owner_id = owner.get_or_else(None)
        result = await attempt(self.store.get_budget_setting(owner_id))
        return result.map(lambda setting: setting or BudgetSetting(owner_id=owner_id))

    async def save(self, monthly: Any, weekly: Any = None) -> Either[Exception, BudgetSetting]:
        monthly_budget = as_amount(monthly)
        weekly_budget = as_amount(weekly) if weekly not in (None, "") else (
            monthly_budget / 4 if monthly_budget is not None else None
        )
        if monthly_budget is None or weekly_budget is None:
            return Left(ValidationError("Budgets must be numbers", monthly_budget=monthly, weekly_budget=weekly))
        if not (monthly_budget > 0 and weekly_budget > 0):
            return Left(ValidationError("Budgets must be positive",
                                        monthly_budget=monthly_budget, weekly_budget=weekly_budget))
        owner = _owner(self.session)
        if owner.is_left():
            return owner
        return await attempt(self.store.upsert_budget_setting(
            owner.get_or_else(None),
            {"monthly_budget": monthly_budget, "weekly_budget": weekly_budget},
        ))
