import logging
from dataclasses import replace
from typing import Callable, Iterable, Optional

import pandas as pd

from budgetbuddy.aggregate import as_amount, money
from budgetbuddy.config import FILTER_MODE
from budgetbuddy.dates import parse_day
from budgetbuddy.domain import (
    ASC,
    DESC,
    IMMUTABLE_FIELDS,
    ExpenseRecord,
    FilterSpec,
    Insert,
    ListSummary,
    Mutation,
    Remove,
    Replace,
    SortSpec,
)
from budgetbuddy.errors import ValidationError

logger = logging.getLogger(__name__)

Predicate = Callable[[ExpenseRecord], bool]


def by_category(category: str) -> Predicate:
    def _filter(r: ExpenseRecord) -> bool:
        return r.category == category

    return _filter


def by_date_range(start=None, end=None) -> Predicate:
    start_ts = parse_day(start) if start is not None else None
    end_ts = parse_day(end) if end is not None else None

    def _filter(r: ExpenseRecord) -> bool:
        day = parse_day(r.date)
        if pd.isna(day):
            return False
        if start_ts is not None and not pd.isna(start_ts) and day < start_ts:
            return False
        if end_ts is not None and not pd.isna(end_ts) and day > end_ts:
            return False
        return True

    return _filter


def by_amount_range(min_amount=None, max_amount=None) -> Predicate:
    def _filter(r: ExpenseRecord) -> bool:
        amount = as_amount(r.amount)
        if amount is None:
            return False
        if min_amount is not None and amount < min_amount:
            return False
        if max_amount is not None and amount > max_amount:
            return False
        return True

    return _filter


def predicates(spec: FilterSpec) -> list[Predicate]:
    preds = []
    if spec.category is not None:
        preds.append(by_category(spec.category))
    if spec.start_date is not None or spec.end_date is not None:
        preds.append(by_date_range(spec.start_date, spec.end_date))
    if spec.min_amount is not None or spec.max_amount is not None:
        preds.append(by_amount_range(spec.min_amount, spec.max_amount))
    return preds


def apply_filter(records: Iterable[ExpenseRecord], spec: FilterSpec) -> tuple[ExpenseRecord, ...]:
    preds = predicates(spec)
    return tuple(r for r in records if all(p(r) for p in preds))


def _sort_key(field: str) -> Callable[[ExpenseRecord], Optional[object]]:
    if field == "date":
        def key(r):
            day = parse_day(r.date)
            return None if pd.isna(day) else day.value
    elif field == "amount":
        def key(r):
            return as_amount(r.amount)
    else:
        def key(r):
            return str(getattr(r, field) or "").casefold()
    return key


def apply_sort(records: Iterable[ExpenseRecord], spec: SortSpec = SortSpec()) -> tuple[ExpenseRecord, ...]:
    """Stable sort by one field; records with an unusable key go last."""
    key = _sort_key(spec.field)
    keyed = [(key(r), r) for r in records]
    sortable = [item for item in keyed if item[0] is not None]
    unsortable = [r for k, r in keyed if k is None]
    ordered = sorted(sortable, key=lambda item: item[0], reverse=spec.direction == DESC)
    return tuple(r for _, r in ordered) + tuple(unsortable)


def derive_summary(records: Iterable[ExpenseRecord]) -> ListSummary:
    amounts = [a for a in (as_amount(r.amount) for r in records) if a is not None]
    count = len(amounts)
    total = money(sum(amounts))
    return ListSummary(count=count, sum=total, average=money(total / count) if count else 0.0)


def check_patch(patch) -> None:
    unknown = set(patch) - set(ExpenseRecord.field_names())
    if unknown:
        raise ValidationError(f"Unknown expense fields: {sorted(unknown)}", fields=sorted(unknown))
    frozen = set(patch) & IMMUTABLE_FIELDS
    if frozen:
        raise ValidationError(f"Fields cannot be changed: {sorted(frozen)}", fields=sorted(frozen))


def apply_mutation(working_set: Iterable[ExpenseRecord], mutation: Mutation) -> tuple[ExpenseRecord, ...]:
    records = tuple(working_set)
    if isinstance(mutation, Insert):
        return records + (mutation.record,)
    if isinstance(mutation, Replace):
        check_patch(mutation.patch)
        return tuple(
            replace(r, **mutation.patch) if r.id == mutation.id else r
            for r in records
        )
    if isinstance(mutation, Remove):
        return tuple(r for r in records if r.id != mutation.id)
    raise TypeError(f"Unknown mutation: {mutation!r}")


class ExpenseListView:
    """Working set plus filter and sort state for the transaction list.

    In "staged" mode filter edits go to a staging buffer and only take effect
    on apply(); in "immediate" mode every edit is applied straight away.
    clear() always applies at once.
    """

    def __init__(self, records: Iterable[ExpenseRecord] = (), mode: str = FILTER_MODE):
        if mode not in ("staged", "immediate"):
            raise ValueError(f"Unknown filter mode: {mode!r}")
        self.mode = mode
        self.working_set: tuple[ExpenseRecord, ...] = tuple(records)
        self.filter_spec = FilterSpec()
        self.staged = FilterSpec()
        self.sort_spec = SortSpec()

    def load(self, records: Iterable[ExpenseRecord]) -> None:
        self.working_set = tuple(records)

    def patch(self, mutation: Mutation) -> None:
        self.working_set = apply_mutation(self.working_set, mutation)

    def stage(self, **changes) -> None:
        self.staged = replace(self.staged, **changes)
        if self.mode == "immediate":
            self.filter_spec = self.staged

    @property
    def has_staged_changes(self) -> bool:
        return self.staged != self.filter_spec

    @property
    def has_active_filters(self) -> bool:
        return not self.filter_spec.is_empty

    def apply(self) -> FilterSpec:
        self.filter_spec = self.staged
        logger.debug("Applied filter %s", self.filter_spec)
        return self.filter_spec

    def clear(self) -> None:
        self.staged = FilterSpec()
        self.filter_spec = FilterSpec()

    def set_sort(self, field: str, direction: str = DESC) -> None:
        self.sort_spec = SortSpec(field, direction)

    def toggle_sort(self, field: str) -> None:
        if field == self.sort_spec.field:
            direction = ASC if self.sort_spec.direction == DESC else DESC
        else:
            direction = DESC
        self.sort_spec = SortSpec(field, direction)

    @property
    def filtered(self) -> tuple[ExpenseRecord, ...]:
        return apply_filter(self.working_set, self.filter_spec)

    @property
    def rows(self) -> tuple[ExpenseRecord, ...]:
        return apply_sort(self.filtered, self.sort_spec)

    @property
    def summary(self) -> ListSummary:
        return derive_summary(self.filtered)
