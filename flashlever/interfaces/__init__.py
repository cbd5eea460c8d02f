"""Protocol interfaces for the leverage keeper."""
from .account import TokenAccount, Transactional
from .chain import GasOracle
from .conversion import ConversionAdapter
from .lending import FlashBorrower, LendingAdapter
from .notifier import Notifier

__all__ = [
    "ConversionAdapter",
    "FlashBorrower",
    "GasOracle",
    "LendingAdapter",
    "Notifier",
    "TokenAccount",
    "Transactional",
]
