"""
Bank connection synchronization for renovation budgets.

Links a bank through an aggregation provider, pulls transactions on demand,
reconciles them idempotently into a local store and suggests a renovation
category for each one.
"""

__version__ = "0.1.0"
