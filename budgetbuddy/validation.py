from typing import Any, Mapping

from budgetbuddy.aggregate import as_amount
from budgetbuddy.dates import iso_day
from budgetbuddy.domain import Category
from budgetbuddy.errors import ValidationError
from budgetbuddy.functional import Either, Left, Right

EDITABLE_FIELDS = ("amount", "description", "category", "date")


def _check_amount(value: Any) -> Either[ValidationError, float]:
    amount = as_amount(value)
    if amount is None or amount <= 0:
        return Left(ValidationError("Please enter a valid amount", field="amount", value=value))
    return Right(amount)


def _check_description(value: Any) -> Either[ValidationError, str]:
    text = (value or "").strip() if isinstance(value, str) or value is None else None
    if not text:
        return Left(ValidationError("Description is required", field="description"))
    return Right(text)


def _check_category(value: Any) -> Either[ValidationError, str]:
    if value not in Category.labels():
        return Left(ValidationError(f"Unknown category: {value}", field="category", value=value))
    return Right(str(value))


def _check_date(value: Any) -> Either[ValidationError, str]:
    day = iso_day(value)
    if day is None:
        return Left(ValidationError(f"Invalid date: {value!r}", field="date", value=value))
    return Right(day)


CHECKS = {
    "amount": _check_amount,
    "description": _check_description,
    "category": _check_category,
    "date": _check_date,
}


def validate_patch(fields: Mapping[str, Any]) -> Either[ValidationError, dict]:
    """Validate and normalise the editable fields present in `fields`."""
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        return Left(ValidationError(f"Fields cannot be edited: {sorted(unknown)}", fields=sorted(unknown)))

    clean = {}
    for name in EDITABLE_FIELDS:
        if name not in fields:
            continue
        result = CHECKS[name](fields[name])
        if result.is_left():
            return result
        clean[name] = result.get_or_else(None)
    return Right(clean)


def validate_expense_fields(fields: Mapping[str, Any]) -> Either[ValidationError, dict]:
    """Validate a new expense; every field but category is required."""
    missing = [name for name in ("amount", "description", "date") if fields.get(name) in (None, "")]
    if missing:
        return Left(ValidationError("Please fill in all required fields", fields=missing))
    return validate_patch({"category": Category.OTHER.value, **fields})
