"""Platform fee policy."""

from __future__ import annotations

from dataclasses import dataclass

from task_market_service.services.task_records import MAX_AMOUNT


@dataclass(frozen=True)
class FeePolicy:
    """
    Flat fee plus a percentage expressed in basis points.

    Amounts are integers in the smallest currency unit; the percentage part
    is rounded half up.
    """

    flat_fee: int
    fee_basis_points: int

    def __post_init__(self) -> None:
        if not 0 <= self.flat_fee <= MAX_AMOUNT:
            raise ValueError(f"flat_fee must be between 0 and {MAX_AMOUNT}")
        if not 0 <= self.fee_basis_points <= 10000:
            raise ValueError("fee_basis_points must be between 0 and 10000")

    def platform_fee(self, amount: int) -> int:
        """Fee charged on top of ``amount``."""
        return self.flat_fee + (amount * self.fee_basis_points + 5000) // 10000
