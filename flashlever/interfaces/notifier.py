"""Notifier protocol — keeper alert channel abstraction."""
from typing import Protocol


class Notifier(Protocol):
    """Channel the keeper reports tends, failures and reports through."""

    async def send_alert(self, message: str, subject: str = "") -> bool: ...

    async def send_log(self, message: str, silent: bool = True) -> bool: ...
