"""AlphaLend lending protocol support."""
from .adapter import AlphaLendAdapter

__all__ = ["AlphaLendAdapter"]
