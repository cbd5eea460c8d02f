"""Service layer."""
from .keeper import Keeper

__all__ = ["Keeper"]
