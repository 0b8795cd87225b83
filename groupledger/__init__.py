"""
GroupLedger - Group consolidation engine.
"""

__version__ = "0.1.0"
