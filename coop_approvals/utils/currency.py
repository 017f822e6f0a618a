"""Currency formatting for user-facing messages"""

from decimal import Decimal, ROUND_HALF_UP
from coop_approvals.config import settings

CENT = Decimal("0.01")


def quantize_amount(amount: Decimal | int | str) -> Decimal:
    """Round an amount to two decimal places (kobo/cents)"""
    return Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)


def format_currency(amount: Decimal | int | str, symbol: str | None = None) -> str:
    """
    Format amount with currency symbol and thousands separators.

    Example:
        Decimal("16000") → "₦16,000.00"
        Decimal("-2500.5") → "-₦2,500.50"
    """
    symbol = settings.currency_symbol if symbol is None else symbol
    value = quantize_amount(amount)
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"
