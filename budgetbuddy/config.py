import os

from dotenv import load_dotenv

load_dotenv()

SUNDAY = 6
MONDAY = 0

SEED_PATH = os.getenv("BUDGETBUDDY_SEED_PATH", "data/seed.json")

WEEK_START = MONDAY if os.getenv("BUDGETBUDDY_WEEK_START", "sunday").lower() == "monday" else SUNDAY

DEFAULT_MONTHLY_BUDGET = float(os.getenv("BUDGETBUDDY_DEFAULT_MONTHLY_BUDGET", "3000"))
DEFAULT_WEEKLY_BUDGET = DEFAULT_MONTHLY_BUDGET / 4

# "staged" or "immediate"
FILTER_MODE = os.getenv("BUDGETBUDDY_FILTER_MODE", "staged").lower()

LOG_LEVEL = os.getenv("BUDGETBUDDY_LOG_LEVEL", "INFO").upper()

CURRENCY = os.getenv("BUDGETBUDDY_CURRENCY", "USD")

DEMO_USER = os.getenv("BUDGETBUDDY_DEMO_USER", "u1")

# seconds to wait for a single store call
STORE_TIMEOUT = float(os.getenv("BUDGETBUDDY_STORE_TIMEOUT", "10"))
