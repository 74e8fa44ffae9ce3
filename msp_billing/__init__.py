"""MSP billing reconciliation engine.

Aggregates unbilled time entries into per-customer billing groups and bills
them exactly once, either through an external accounting system or by a
manual export record.
"""

__version__ = "1.0.0"
