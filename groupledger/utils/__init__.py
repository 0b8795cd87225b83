"""
GroupLedger - Utilities
"""
