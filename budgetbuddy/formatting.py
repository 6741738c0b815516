from typing import Any

import pandas as pd

from budgetbuddy.aggregate import as_amount
from budgetbuddy.config import CURRENCY
from budgetbuddy.dates import parse_day

SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "INR": "₹", "KZT": "₸"}


def format_currency(amount: Any, currency: str = CURRENCY) -> str:
    value = as_amount(amount) or 0.0
    symbol = SYMBOLS.get(currency, currency + " ")
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"


def format_date(value: Any) -> str:
    day = parse_day(value)
    if pd.isna(day):
        return "-"
    return f"{day.strftime('%b')} {day.day}, {day.year}"
