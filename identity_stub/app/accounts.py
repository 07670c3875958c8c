"""
In-memory account store for the identity stub.

Accounts are seeded once from STUB_ACCOUNTS and live for the process. Balances
only go down, through usage batches; verification never charges.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from . import config

logger = logging.getLogger(__name__)


@dataclass
class Account:
    token: str
    agent_id: str
    email: str
    balance: float


def parse_accounts(raw: str) -> List[Account]:
    """
    Parse "token:agent_id:email:balance" entries separated by commas.

    Raises:
        ValueError: If an entry does not have four fields or a numeric balance
    """
    accounts = []
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        parts = entry.split(":")
        if len(parts) != 4:
            raise ValueError(f"Malformed STUB_ACCOUNTS entry: {entry!r}")
        token, agent_id, email, balance = parts
        accounts.append(Account(token=token, agent_id=agent_id, email=email, balance=float(balance)))
    return accounts


class AccountStore:
    """Token and agent lookups plus credit deduction."""

    def __init__(self, accounts: Iterable[Account], cost_per_unit: float):
        self.cost_per_unit = cost_per_unit
        self._by_token: Dict[str, Account] = {}
        self._by_agent: Dict[str, Account] = {}
        for account in accounts:
            self._by_token[account.token] = account
            self._by_agent[account.agent_id] = account

    def __len__(self) -> int:
        return len(self._by_token)

    def by_token(self, token: str) -> Optional[Account]:
        return self._by_token.get(token)

    def by_agent(self, agent_id: str) -> Optional[Account]:
        return self._by_agent.get(agent_id)

    def describe(self, account: Account, quantity: int = 1) -> dict:
        """Verification body for an accepted token."""
        return {
            "valid": True,
            "agent_id": account.agent_id,
            "email": account.email,
            "balance": account.balance,
            "cost_per_unit": self.cost_per_unit,
            "can_afford": account.balance >= self.cost_per_unit * quantity,
        }

    def charge(self, records: Iterable[dict]) -> Tuple[int, float]:
        """
        Deduct quantity * cost_per_unit for each record of a known agent.

        Records for unknown agents are skipped and not counted.

        Returns:
            (processed, total_credits_deducted)
        """
        processed = 0
        total = 0.0
        for record in records:
            account = self.by_agent(record.get("agent_id", ""))
            if account is None:
                logger.warning(f"Usage for unknown agent skipped: {record.get('agent_id')}")
                continue
            amount = self.cost_per_unit * int(record.get("quantity", 1))
            account.balance -= amount
            total += amount
            processed += 1
        return processed, round(total, 6)


# Module-level store instance
_account_store: Optional[AccountStore] = None


def get_account_store() -> AccountStore:
    """Get or create the account store instance."""
    global _account_store
    if _account_store is None:
        _account_store = AccountStore(
            parse_accounts(config.settings.STUB_ACCOUNTS),
            cost_per_unit=config.settings.STUB_COST_PER_UNIT,
        )
    return _account_store
