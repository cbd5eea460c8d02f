"""Gas oracle protocol — host execution cost abstraction."""
from typing import Protocol


class GasOracle(Protocol):
    """Abstract interface for reading the current host gas price."""

    async def get_gas_price(self) -> int: ...
