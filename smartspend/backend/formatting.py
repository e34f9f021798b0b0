import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves going up (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def format_inr(amount: float) -> str:
    """Format number as INR, dropping a zero fraction: 1200.0 -> '₹1200', 99.5 -> '₹99.5'"""
    text = f"{amount:.2f}".rstrip('0').rstrip('.')
    return f"₹{text}"


def format_inr_grouped(amount: float) -> str:
    """Format number as INR with thousands separators, for summaries."""
    if float(amount).is_integer():
        return f"₹{amount:,.0f}"
    return f"₹{amount:,.2f}"
