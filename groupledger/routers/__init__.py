"""
GroupLedger - API Routers
"""

from groupledger.routers import consolidation, fx

__all__ = ["consolidation", "fx"]
