"""
Application configuration and constants.
"""

import os
from typing import Dict

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Money is held in integer minor units (cents) inside the engine
MINOR_UNITS_PER_MAJOR = 100

# API configuration
API_VERSION = "1.0.0"
API_TITLE = "Household Projection API"
API_DESCRIPTION = "Deterministic multi-year household cash flow and net worth projection"

# CORS configuration
CORS_ORIGINS = os.getenv("PROJECTION_CORS_ORIGINS", "*").split(",")
CORS_CREDENTIALS = True
CORS_METHODS = ["*"]
CORS_HEADERS = ["*"]

# Simulation defaults
DEFAULT_GRANULARITY = "annual"
DEFAULT_LIFE_EXPECTANCY = 100
DEFAULT_RETIREMENT_AGE = 60

# Fallback rates (annual, decimal) when a record leaves its rate unset
DEFAULT_RETURN_RATE = 0.05
DEFAULT_SAVINGS_RATE = 0.03
DEFAULT_INCOME_GROWTH_RATE = 0.03
DEFAULT_PHYSICAL_ASSET_RATE = -0.10  # vehicles and equipment lose value

# Pension defaults
PENSION_MIN_START_AGE = 56
DEFAULT_DISTRIBUTION_YEARS = 10
DEFAULT_PUBLIC_PENSION_START_AGE = 65

# Ids of the pinned accounts synthesized when a scenario names none
LIQUID_ACCOUNT_ID = "__cash__"
OVERDRAFT_ACCOUNT_ID = "__overdraft__"

# Scenario presets (annual, decimal)
SCENARIO_PRESETS: Dict[str, Dict[str, float]] = {
    "optimistic": {
        "inflation_rate": 0.020,
        "income_growth_rate": 0.050,
        "investment_return_rate": 0.080,
        "real_estate_growth_rate": 0.040,
        "base_rate": 0.025,
    },
    "average": {
        "inflation_rate": 0.025,
        "income_growth_rate": 0.030,
        "investment_return_rate": 0.050,
        "real_estate_growth_rate": 0.025,
        "base_rate": 0.035,
    },
    "pessimistic": {
        "inflation_rate": 0.040,
        "income_growth_rate": 0.010,
        "investment_return_rate": 0.020,
        "real_estate_growth_rate": 0.005,
        "base_rate": 0.050,
    },
}

# Performance settings
USE_PARALLEL_PROCESSING = os.getenv("PROJECTION_PARALLEL", "false").lower() == "true"
MAX_WORKERS = int(os.getenv("PROJECTION_MAX_WORKERS", "4"))

# Logging configuration
LOG_LEVEL = os.getenv("PROJECTION_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
