"""
MiniBank Ledger & Workflow Engine

A single-operator banking engine: identities with lockout, account balances
guarded by a minimum-balance floor, FIFO approval queues for account opening,
admin enrollment, loans and appointments, and durable line-oriented storage.
"""

__version__ = "1.0.0"
