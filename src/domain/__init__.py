"""Domain logic for capital gains on crypto holdings.

Lot matching, rate schedules and liability estimation live here, independent
from persistence and network access so they can be tested in isolation.
"""

__all__ = [
    "ledger",
    "rates",
    "tax_calculator",
    "tax_lots",
    "transactions",
]
