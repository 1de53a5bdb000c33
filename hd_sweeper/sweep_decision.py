"""
Sweep Decision

Pure rule deciding whether a balance is worth forwarding.

Author: HD Sweeper
Version: 1.0.0
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .fee_fetcher import FeeEstimate

# Gas used by a plain value transfer
TRANSFER_GAS = 21000


@dataclass(frozen=True)
class SweepAttempt:
    """Balance that clears the transfer cost; amount is what gets sent"""
    balance: int
    transfer_cost: int
    amount: int


def decide(
    balance: int,
    fee_estimate: 'FeeEstimate',
    transfer_gas: int = TRANSFER_GAS,
    min_fee_per_gas: int = 1,
    dust_threshold: int = 0,
) -> Optional[SweepAttempt]:
    """
    Decide whether to sweep a balance

    Args:
        balance: Account balance in wei
        fee_estimate: FeeEstimate; its fee_per_gas prices the transfer
        transfer_gas: Gas limit of the transfer
        min_fee_per_gas: Estimates below this floor never sweep
        dust_threshold: Amounts at or below this are left in place

    Returns:
        SweepAttempt with amount = balance - transfer_cost, or None
    """
    fee_per_gas = fee_estimate.fee_per_gas
    if fee_per_gas < min_fee_per_gas:
        return None

    transfer_cost = transfer_gas * fee_per_gas
    if balance <= transfer_cost:
        return None

    amount = balance - transfer_cost
    if amount <= dust_threshold:
        return None

    return SweepAttempt(balance=balance, transfer_cost=transfer_cost, amount=amount)
