"""Earn/staking interest accrual."""

from folio.earn.accrual import accrue, accrue_due, next_payout_at, persist_accrued

__all__ = ["accrue", "accrue_due", "next_payout_at", "persist_accrued"]
