"""Token account and transactional-collaborator protocols."""
from typing import Any, Protocol, runtime_checkable


class TokenAccount(Protocol):
    """Balances held directly by the strategy (not supplied to the market)."""

    def balance_of(self, token: str) -> int: ...


@runtime_checkable
class Transactional(Protocol):
    """Collaborator whose state can be captured and rolled back."""

    def snapshot(self) -> Any: ...

    def restore(self, snapshot: Any) -> None: ...
