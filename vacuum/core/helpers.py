from datetime import datetime
from typing import Optional

LAMPORTS_PER_SOL = 1_000_000_000

# rent-exempt minimum of a 165-byte SPL token account
TOKEN_ACCOUNT_RENT = 2_039_280


def lamports_to_sol(lamports: int, decimals: int = 6) -> float:
    return round(lamports / LAMPORTS_PER_SOL, decimals)


def format_sol(lamports: int) -> str:
    return f"{lamports_to_sol(lamports)} SOL"


def shorten_address(address, chars: int = 4) -> str:
    value = str(address)
    if len(value) <= chars * 2:
        return value
    return f"{value[:chars]}...{value[-chars:]}"


def days_since(moment: datetime, now: Optional[datetime] = None) -> int:
    """Whole days elapsed since ``moment`` (naive UTC)."""
    now = now or datetime.utcnow()
    return int((now - moment).total_seconds() // 86400)
