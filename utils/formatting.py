"""
Formatting utilities.
"""


def format_currency(amount: float, currency: str = "MDL") -> str:
    """
    Format an amount as currency.

    Args:
        amount: The amount in whole currency units.
        currency: Currency code (default MDL).

    Returns:
        Formatted currency string, e.g. "1,250.50 MDL" or "€1,250.50".
    """
    symbols = {
        "USD": "$",
        "EUR": "€",
        "GBP": "£",
    }
    symbol = symbols.get(currency)
    if symbol:
        return f"{symbol}{amount:,.2f}"
    return f"{amount:,.2f} {currency}"


def format_percent(value: float, decimals: int = 1) -> str:
    """
    Format a ratio as a percentage.

    Args:
        value: The ratio (0.1 means 10%).
        decimals: Number of decimal places.

    Returns:
        Formatted percentage string.
    """
    return f"{value * 100:.{decimals}f}%"
