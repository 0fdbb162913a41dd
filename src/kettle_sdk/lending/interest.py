"""Debt accrual for Kettle liens.

Mirrors the settlement contract's accounting: interest accrues linearly on a
1e18 fixed-point scale, the protocol fee accrues at its own rate for the whole
elapsed time, and the lender's rate switches to the default rate at maturity.
Integer arithmetic only.
"""

from dataclasses import dataclass

WAD = 10**18
YEAR_SECONDS = 365 * 24 * 60 * 60
BASIS_POINTS = 10_000


@dataclass(frozen=True)
class DebtAmount:
    """Current debt of a lien split by beneficiary."""

    debt: int
    """Principal plus all accrued interest."""

    fee_interest: int
    """Interest owed to the protocol fee recipient."""

    lender_interest: int
    """Interest owed to the lender."""


def bips_to_wad(bips: int) -> int:
    return (bips * WAD) // BASIS_POINTS


def accrue(amount: int, rate: int, start_time: int, end_time: int) -> int:
    """Grow ``amount`` at ``rate`` basis points per year over ``[start, end]``.

    Args:
        amount: Amount at ``start_time``
        rate: Annual rate in basis points
        start_time: Unix seconds
        end_time: Unix seconds; values before ``start_time`` accrue nothing

    Returns:
        ``amount * (1 + rate/10000 * elapsed/YEAR)``, truncated
    """
    elapsed = max(end_time - start_time, 0)
    years_wad = (elapsed * WAD) // YEAR_SECONDS
    interest_wad = (years_wad * bips_to_wad(rate)) // WAD
    return (amount * (WAD + interest_wad)) // WAD


def current_debt_amount(
    now: int,
    principal: int,
    start_time: int,
    duration: int,
    fee_rate: int,
    rate: int,
    default_rate: int,
) -> DebtAmount:
    """Compute a lien's debt at ``now``.

    After maturity (``start_time + duration``) the default rate accrues on top
    of the amount already accrued at ``rate``, not on the bare principal.
    """
    debt_with_fee = accrue(principal, fee_rate, start_time, now)

    maturity = start_time + duration
    if now > maturity:
        debt_with_rate = accrue(principal, rate, start_time, maturity)
        debt_with_rate = accrue(debt_with_rate, default_rate, maturity, now)
    else:
        debt_with_rate = accrue(principal, rate, start_time, now)

    fee_interest = debt_with_fee - principal
    lender_interest = debt_with_rate - principal
    return DebtAmount(
        debt=principal + fee_interest + lender_interest,
        fee_interest=fee_interest,
        lender_interest=lender_interest,
    )
