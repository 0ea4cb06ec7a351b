"""
Per-domain repository modules for database access.

Functions take an explicit `Session` and commit their own writes so each
ledger step is durable on its own.
"""
