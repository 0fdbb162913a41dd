"""Utility functions and constants for Kettle offers."""

import secrets
import time
from typing import Any

# Zero address
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Zero bytes32
BYTES_ZERO = "0x" + "00" * 32

# Largest uint256, used for unlimited ERC-20 approvals
MAX_UINT256 = 2**256 - 1

BASIS_POINTS_DIVISOR = 10_000


def require_uint(value: Any, field: str) -> int:
    """Check that a value is a non-negative uint256 integer.

    Args:
        value: Value to check
        field: Field name used in the error message

    Returns:
        The value unchanged

    Raises:
        ValueError: If the value is not an int, is a bool, or is out of range
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Invalid {field}: {value!r}. Must be an integer")
    if value < 0 or value > MAX_UINT256:
        raise ValueError(f"Invalid {field}: {value}. Must be a uint256")
    return value


def parse_uint(value: Any, field: str) -> int:
    """Parse a wire value (int or decimal/hex string) into a uint256.

    Floats are rejected rather than rounded.
    """
    if isinstance(value, str):
        text = value.strip()
        try:
            parsed = int(text, 16) if text.lower().startswith("0x") else int(text, 10)
        except ValueError:
            raise ValueError(f"Invalid {field}: {value!r}. Must be an integer") from None
        return require_uint(parsed, field)
    return require_uint(value, field)


def parse_bool(value: Any, field: str) -> bool:
    """Parse a wire value (bool or "true"/"false") into a bool."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError(f"Invalid {field}: {value!r}. Must be a bool")


def equal_addresses(a: Any, b: Any) -> bool:
    """Compare two addresses case-insensitively. ``None`` never matches."""
    if not isinstance(a, str) or not isinstance(b, str):
        return False
    return a.lower() == b.lower()


def get_epoch() -> int:
    """Current unix time in seconds."""
    return int(time.time())


def generate_random_salt() -> int:
    """Generate a random 8-byte salt for a new offer."""
    return int.from_bytes(secrets.token_bytes(8), "big")


def calculate_market_fee(amount: int, rate: int) -> int:
    """Calculate the market fee taken from a sale amount.

    Args:
        amount: Sale amount in currency units
        rate: Fee rate in basis points (e.g., 250 = 2.5%)

    Returns:
        Fee amount in currency units
    """
    return (amount * rate) // BASIS_POINTS_DIVISOR


def calculate_net_market_amount(amount: int, rate: int) -> int:
    """Amount the seller receives after the market fee."""
    return amount - calculate_market_fee(amount, rate)


def format_units(amount: int, decimals: int = 18) -> str:
    """Format an integer token amount to a human readable string.

    Args:
        amount: Amount in the token's smallest unit
        decimals: Token decimals (default: 18)

    Returns:
        Human readable string (e.g., "1.5")
    """
    sign = "-" if amount < 0 else ""
    whole, frac = divmod(abs(amount), 10**decimals)
    if decimals == 0 or frac == 0:
        return f"{sign}{whole}"
    frac_str = str(frac).rjust(decimals, "0").rstrip("0")
    return f"{sign}{whole}.{frac_str}"


def format_bps(bps: int) -> str:
    """Format basis points to percentage string.

    Args:
        bps: Basis points (e.g., 25 = 0.25%)

    Returns:
        Percentage string (e.g., "0.25%")
    """
    return f"{bps / 100}%"
