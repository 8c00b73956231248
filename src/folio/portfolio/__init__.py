"""Validated portfolio operations with read-time interest accrual."""

from folio.portfolio.manager import EarnPosition, PortfolioManager

__all__ = ["EarnPosition", "PortfolioManager"]
