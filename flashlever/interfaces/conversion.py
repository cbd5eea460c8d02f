"""Conversion adapter — asset <-> collateral exchange."""
from typing import Protocol


class ConversionAdapter(Protocol):
    """Abstract interface for a swap venue or wrapper.

    Both methods must raise ``SlippageViolation`` when the output would be
    below ``min_out``.
    """

    def convert_asset_to_collateral(self, amount: int, min_out: int) -> int: ...

    def convert_collateral_to_asset(self, amount: int, min_out: int) -> int: ...
