"""
Bakery Ledger - Source Package

Income/expense bookkeeping for a small home bakery: records tagged with a
fixed category taxonomy, aggregated per calendar month.

DESIGN PRINCIPLES:
1. Validate against the taxonomy before anything reaches storage
2. Storage owns the truth; the engine only mirrors the latest snapshot
3. No silent corrections of user input
4. Aggregation never fails on a corrupt record
"""

__version__ = "1.0.0"
__author__ = "Bakery Ledger Team"
