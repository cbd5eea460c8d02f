"""Paper token account — balances held outside the lending market."""
from __future__ import annotations

from ...errors import InsufficientCapacityError


class PaperAccount:
    """Token balances of the strategy itself."""

    def __init__(self, balances: dict[str, int] | None = None) -> None:
        self._balances: dict[str, int] = dict(balances or {})

    def balance_of(self, token: str) -> int:
        return self._balances.get(token, 0)

    def credit(self, token: str, amount: int) -> None:
        self._balances[token] = self.balance_of(token) + amount

    def debit(self, token: str, amount: int) -> None:
        balance = self.balance_of(token)
        if amount > balance:
            raise InsufficientCapacityError(
                f"Insufficient {token} balance: need {amount}, have {balance}"
            )
        self._balances[token] = balance - amount

    def snapshot(self) -> dict[str, int]:
        return dict(self._balances)

    def restore(self, snapshot: dict[str, int]) -> None:
        self._balances = dict(snapshot)
