from dataclasses import dataclass, field, fields
from datetime import date
from enum import Enum
from typing import Any, Mapping, Optional, Union

from budgetbuddy.config import DEFAULT_MONTHLY_BUDGET, DEFAULT_WEEKLY_BUDGET


class Category(str, Enum):
    FOOD = "Food & Dining"
    TRANSPORTATION = "Transportation"
    SHOPPING = "Shopping"
    ENTERTAINMENT = "Entertainment"
    BILLS = "Bills & Utilities"
    HEALTHCARE = "Healthcare"
    EDUCATION = "Education"
    TRAVEL = "Travel"
    BUSINESS = "Business"
    OTHER = "Other"

    @classmethod
    def coerce(cls, value: Any) -> "Category":
        """Map any stored value onto the closed set, falling back to Other."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER

    @classmethod
    def labels(cls) -> tuple[str, ...]:
        return tuple(c.value for c in cls)

    def __str__(self) -> str:
        return self.value


DateLike = Union[str, date]


@dataclass(frozen=True)
class ExpenseRecord:
    id: str
    owner_id: str
    amount: float
    description: str
    category: str        # stored as-is, see display_category
    date: DateLike       # when the expense happened, e.g. "2024-01-05"
    created_at: str
    updated_at: Optional[str] = None

    @property
    def display_category(self) -> Category:
        return Category.coerce(self.category)

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ExpenseRecord":
        return cls(**{k: v for k, v in row.items() if k in cls.field_names()})

    def to_row(self) -> dict:
        return {name: getattr(self, name) for name in self.field_names()}


IMMUTABLE_FIELDS = frozenset({"id", "owner_id", "created_at"})


@dataclass(frozen=True)
class BudgetSetting:
    owner_id: str
    monthly_budget: float = DEFAULT_MONTHLY_BUDGET
    weekly_budget: float = DEFAULT_WEEKLY_BUDGET


@dataclass(frozen=True)
class FilterSpec:
    category: Optional[str] = None
    start_date: Optional[DateLike] = None
    end_date: Optional[DateLike] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return self == FilterSpec()


SORT_FIELDS = ("date", "amount", "category", "description")
ASC = "asc"
DESC = "desc"


@dataclass(frozen=True)
class SortSpec:
    field: str = "date"
    direction: str = DESC

    def __post_init__(self):
        if self.field not in SORT_FIELDS:
            raise ValueError(f"Unknown sort field: {self.field}")
        if self.direction not in (ASC, DESC):
            raise ValueError(f"Unknown sort direction: {self.direction}")


# Working-set mutations
@dataclass(frozen=True)
class Insert:
    record: ExpenseRecord


@dataclass(frozen=True)
class Replace:
    id: str
    patch: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Remove:
    id: str


Mutation = Union[Insert, Replace, Remove]


@dataclass(frozen=True)
class SessionUser:
    user_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None


@dataclass(frozen=True)
class Summary:
    total: float
    this_month: float
    this_week: float


@dataclass(frozen=True)
class CategoryTotal:
    category: Category
    total: float


@dataclass(frozen=True)
class SeriesPoint:
    label: str
    total: float


@dataclass(frozen=True)
class ListSummary:
    count: int
    sum: float
    average: float


@dataclass(frozen=True)
class CategoryStyle:
    icon: str
    color: str


CATEGORY_STYLES: dict[Category, CategoryStyle] = {
    Category.FOOD: CategoryStyle("🍽️", "#f97316"),
    Category.TRANSPORTATION: CategoryStyle("🚗", "#3b82f6"),
    Category.SHOPPING: CategoryStyle("🛍️", "#ec4899"),
    Category.ENTERTAINMENT: CategoryStyle("🎬", "#a855f7"),
    Category.BILLS: CategoryStyle("💡", "#eab308"),
    Category.HEALTHCARE: CategoryStyle("🩺", "#ef4444"),
    Category.EDUCATION: CategoryStyle("📚", "#14b8a6"),
    Category.TRAVEL: CategoryStyle("✈️", "#0ea5e9"),
    Category.BUSINESS: CategoryStyle("💼", "#64748b"),
    Category.OTHER: CategoryStyle("📦", "#9ca3af"),
}


def category_style(value: Any) -> CategoryStyle:
    # total: every member has an entry and coerce() never leaves the enum
    return CATEGORY_STYLES[Category.coerce(value)]


@dataclass(frozen=True)
class BudgetStatus:
    monthly_budget: float
    weekly_budget: float
    spent_month: float
    spent_week: float

    @property
    def remaining_month(self) -> float:
        return round(self.monthly_budget - self.spent_month, 2)

    @property
    def remaining_week(self) -> float:
        return round(self.weekly_budget - self.spent_week, 2)

    @property
    def month_ratio(self) -> float:
        return self.spent_month / self.monthly_budget if self.monthly_budget > 0 else 0.0

    @property
    def week_ratio(self) -> float:
        return self.spent_week / self.weekly_budget if self.weekly_budget > 0 else 0.0

    @property
    def over_month(self) -> bool:
        return self.spent_month > self.monthly_budget

    @property
    def over_week(self) -> bool:
        return self.spent_week > self.weekly_budget
