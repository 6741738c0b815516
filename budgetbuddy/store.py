import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Tuple
from uuid import uuid4

from budgetbuddy.domain import BudgetSetting, ExpenseRecord, FilterSpec, SessionUser
from budgetbuddy.errors import AuthError, NotFoundError, OwnershipError, ValidationError
from budgetbuddy.listview import apply_filter, apply_sort
from budgetbuddy.session import SessionContext
from budgetbuddy.validation import validate_expense_fields, validate_patch

logger = logging.getLogger(__name__)


def load_seed(
    path: str,
) -> Tuple[
    Tuple[SessionUser, ...],
    Tuple[ExpenseRecord, ...],
    Tuple[BudgetSetting, ...],
]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    users = tuple(SessionUser(**u) for u in data.get("users", []))
    expenses = tuple(ExpenseRecord.from_row(e) for e in data.get("expenses", []))
    budgets = tuple(BudgetSetting(**b) for b in data.get("budgets", []))

    return users, expenses, budgets


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class ExpenseStore(ABC):
    """The hosted data/auth service, as seen by the app.

    Every call is scoped to `owner_id` and fails with AuthError when that is
    not the signed-in user.
    """

    @abstractmethod
    async def list_expenses(self, owner_id: str, spec: Optional[FilterSpec] = None) -> Tuple[ExpenseRecord, ...]:
        pass

    @abstractmethod
    async def insert_expense(self, owner_id: str, fields: Mapping[str, Any]) -> ExpenseRecord:
        pass

    @abstractmethod
    async def update_expense(self, expense_id: str, owner_id: str, patch: Mapping[str, Any]) -> ExpenseRecord:
        pass

    @abstractmethod
    async def delete_expense(self, expense_id: str, owner_id: str) -> None:
        pass

    @abstractmethod
    async def get_budget_setting(self, owner_id: str) -> Optional[BudgetSetting]:
        pass

    @abstractmethod
    async def upsert_budget_setting(self, owner_id: str, fields: Mapping[str, Any]) -> BudgetSetting:
        pass

    @abstractmethod
    async def get_session(self) -> Optional[SessionUser]:
        pass


class MemoryStore(ExpenseStore):
    """In-process stand-in for the hosted service, used by the demo app and tests.

    `latency` delays every call; `fail_next(error)` makes the next call raise.
    """

    def __init__(
        self,
        session: SessionContext,
        expenses: Tuple[ExpenseRecord, ...] = (),
        budgets: Tuple[BudgetSetting, ...] = (),
        latency: float = 0.0,
    ):
        self.session = session
        self.latency = latency
        self._expenses: Tuple[ExpenseRecord, ...] = tuple(expenses)
        self._budgets = {b.owner_id: b for b in budgets}
        self._failures: list[Exception] = []

    @classmethod
    def from_seed(cls, path: str, session: SessionContext, **kwargs) -> "MemoryStore":
        _, expenses, budgets = load_seed(path)
        return cls(session, expenses, budgets, **kwargs)

    def fail_next(self, error: Exception) -> None:
        self._failures.append(error)

    async def _roundtrip(self, owner_id: Optional[str] = None) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        if self._failures:
            raise self._failures.pop(0)
        if owner_id is None:
            return
        user = self.session.user
        if user is None:
            raise AuthError("Not signed in")
        if user.user_id != owner_id:
            raise OwnershipError("Owner does not match the signed-in user", owner_id=owner_id)

    def _find(self, expense_id: str, owner_id: str) -> Optional[ExpenseRecord]:
        return next(
            (e for e in self._expenses if e.id == expense_id and e.owner_id == owner_id),
            None,
        )

    async def list_expenses(self, owner_id, spec=None):
        await self._roundtrip(owner_id)
        rows = tuple(e for e in self._expenses if e.owner_id == owner_id)
        if spec is not None:
            rows = apply_filter(rows, spec)
        return apply_sort(rows)

    async def insert_expense(self, owner_id, fields):
        await self._roundtrip(owner_id)
        result = validate_expense_fields(fields)
        if result.is_left():
            raise result.get_error()
        record = ExpenseRecord(
            id=str(uuid4()),
            owner_id=owner_id,
            created_at=utcnow(),
            **result.get_or_else({}),
        )
        self._expenses = self._expenses + (record,)
        logger.info("Inserted expense %s for %s", record.id, owner_id)
        return record

    async def update_expense(self, expense_id, owner_id, patch):
        await self._roundtrip(owner_id)
        current = self._find(expense_id, owner_id)
        if current is None:
            raise NotFoundError(f"Expense {expense_id} not found", id=expense_id)
        result = validate_patch(patch)
        if result.is_left():
            raise result.get_error()
        updated = replace(current, updated_at=utcnow(), **result.get_or_else({}))
        self._expenses = tuple(updated if e is current else e for e in self._expenses)
        logger.info("Updated expense %s", expense_id)
        return updated

    async def delete_expense(self, expense_id, owner_id):
        await self._roundtrip(owner_id)
        before = len(self._expenses)
        self._expenses = tuple(
            e for e in self._expenses if not (e.id == expense_id and e.owner_id == owner_id)
        )
        if len(self._expenses) < before:
            logger.info("Deleted expense %s", expense_id)

    async def get_budget_setting(self, owner_id):
        await self._roundtrip(owner_id)
        return self._budgets.get(owner_id)

    async def upsert_budget_setting(self, owner_id, fields):
        await self._roundtrip(owner_id)
        unknown = set(fields) - {"monthly_budget", "weekly_budget"}
        if unknown:
            raise ValidationError(f"Unknown budget fields: {sorted(unknown)}", fields=sorted(unknown))
        current = self._budgets.get(owner_id, BudgetSetting(owner_id=owner_id))
        setting = replace(current, **fields)
        self._budgets[owner_id] = setting
        return setting

    async def get_session(self):
        await self._roundtrip()
        return self.session.user
