"""Leverage engine: accounting, limits, parameter store, flash dispatch."""
from .accounting import PositionAccounting
from .capacity import CapacityCalculator
from .controller import LeverageController
from .dispatcher import FlashBorrowDispatcher
from .params import ParameterStore

__all__ = [
    "CapacityCalculator",
    "FlashBorrowDispatcher",
    "LeverageController",
    "ParameterStore",
    "PositionAccounting",
]
