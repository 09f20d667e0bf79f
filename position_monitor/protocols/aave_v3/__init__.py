"""Aave V3 lending protocol support."""
from .adapter import AaveV3Adapter

__all__ = ["AaveV3Adapter"]
