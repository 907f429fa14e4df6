"""
SynkBoard backend core.

Rule evaluation and action execution for tenant-defined automation rules,
plus the dynamic aggregation engine behind dashboard widgets.
"""

__version__ = "0.1.0"
