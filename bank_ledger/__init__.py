"""
Bank Ledger Service

Account balances and money transfers with strict consistency guarantees.
Every transfer is one atomic unit of work: locked reads, invariant checks,
balance mutations and an immutable ledger entry commit or roll back together.
"""

__version__ = "1.0.0"
