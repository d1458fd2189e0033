"""Reference statutory rate tables for 2024 and 2025.

These mirror the published CRA payroll deduction tables for the federal
government, Ontario, British Columbia and Alberta. Production deployments
load tables from the database (see services.sql_store); the command line
falls back to these only when the database holds no active tables.
"""

from __future__ import annotations

from typing import Any

from cra_payroll.calculators.rate_tables import RateTable, RateTableRegistry

FEDERAL_2025: dict[str, Any] = {
    "tax_year": 2025,
    "jurisdiction": "FED",
    "effective_from": "2025-01-01",
    "basic_personal_amount": "16129",
    "brackets": [
        {"upper_bound": "57375", "rate": "0.145"},
        {"upper_bound": "114750", "rate": "0.205"},
        {"upper_bound": "177882", "rate": "0.26"},
        {"upper_bound": "253414", "rate": "0.29"},
        {"upper_bound": None, "rate": "0.33"},
    ],
    "cpp": {"rate": "0.0595", "basic_exemption": "3500", "annual_max": "71300"},
    "ei": {"rate": "0.0164", "annual_max_insurable": "65700", "employer_multiplier": "1.4"},
}

ONTARIO_2025: dict[str, Any] = {
    "tax_year": 2025,
    "jurisdiction": "ON",
    "effective_from": "2025-01-01",
    "basic_personal_amount": "12747",
    "brackets": [
        {"upper_bound": "52886", "rate": "0.0505"},
        {"upper_bound": "105775", "rate": "0.0915"},
        {"upper_bound": "150000", "rate": "0.1116"},
        {"upper_bound": "220000", "rate": "0.1216"},
        {"upper_bound": None, "rate": "0.1316"},
    ],
}

BRITISH_COLUMBIA_2025: dict[str, Any] = {
    "tax_year": 2025,
    "jurisdiction": "BC",
    "effective_from": "2025-01-01",
    "basic_personal_amount": "12932",
    "brackets": [
        {"upper_bound": "49279", "rate": "0.0506"},
        {"upper_bound": "98560", "rate": "0.077"},
        {"upper_bound": "113158", "rate": "0.105"},
        {"upper_bound": "137407", "rate": "0.1229"},
        {"upper_bound": "186306", "rate": "0.147"},
        {"upper_bound": "259829", "rate": "0.168"},
        {"upper_bound": None, "rate": "0.205"},
    ],
}

ALBERTA_2025: dict[str, Any] = {
    "tax_year": 2025,
    "jurisdiction": "AB",
    "effective_from": "2025-01-01",
    "basic_personal_amount": "22323",
    "brackets": [
        {"upper_bound": "60000", "rate": "0.08"},
        {"upper_bound": "151234", "rate": "0.10"},
        {"upper_bound": "181481", "rate": "0.12"},
        {"upper_bound": "241974", "rate": "0.13"},
        {"upper_bound": "362961", "rate": "0.14"},
        {"upper_bound": None, "rate": "0.15"},
    ],
}

FEDERAL_2024: dict[str, Any] = {
    "tax_year": 2024,
    "jurisdiction": "FED",
    "effective_from": "2024-01-01",
    "basic_personal_amount": "15705",
    "brackets": [
        {"upper_bound": "55867", "rate": "0.15"},
        {"upper_bound": "111733", "rate": "0.205"},
        {"upper_bound": "173205", "rate": "0.26"},
        {"upper_bound": "246752", "rate": "0.29"},
        {"upper_bound": None, "rate": "0.33"},
    ],
    "cpp": {"rate": "0.0595", "basic_exemption": "3500", "annual_max": "68500"},
    "ei": {"rate": "0.0166", "annual_max_insurable": "63200", "employer_multiplier": "1.4"},
}

ONTARIO_2024: dict[str, Any] = {
    "tax_year": 2024,
    "jurisdiction": "ON",
    "effective_from": "2024-01-01",
    "basic_personal_amount": "12399",
    "brackets": [
        {"upper_bound": "51446", "rate": "0.0505"},
        {"upper_bound": "102894", "rate": "0.0915"},
        {"upper_bound": "150000", "rate": "0.1116"},
        {"upper_bound": "220000", "rate": "0.1216"},
        {"upper_bound": None, "rate": "0.1316"},
    ],
}

SEED_PAYLOADS: tuple[dict[str, Any], ...] = (
    FEDERAL_2024,
    ONTARIO_2024,
    FEDERAL_2025,
    ONTARIO_2025,
    BRITISH_COLUMBIA_2025,
    ALBERTA_2025,
)


def seed_tables() -> list[RateTable]:
    return [RateTable.from_payload(payload) for payload in SEED_PAYLOADS]


def default_registry() -> RateTableRegistry:
    """Registry pre-loaded with the reference tables."""
    return RateTableRegistry.from_tables(seed_tables())
