"""
Usage Package

Metering of proxy calls against the identity/billing service.

Modules:
- ledger: UsageLedger, the in-memory queue and its periodic, forced and
  shutdown flushes
"""

from .ledger import UsageLedger

__all__ = ["UsageLedger"]
