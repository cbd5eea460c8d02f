"""In-memory paper market: token account, lending market and swapper."""
from .account import PaperAccount
from .market import PaperLendingMarket
from .swapper import PaperSwapper

__all__ = ["PaperAccount", "PaperLendingMarket", "PaperSwapper"]
