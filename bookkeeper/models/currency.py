"""Currency table and display helpers."""

import datetime as dt
from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple, Optional, Union

from bookkeeper.models.business import DateFormat, LocalePreferences


class Currency(NamedTuple):
    code: str
    name: str
    symbol: str
    decimals: int


CURRENCIES: dict[str, Currency] = {
    c.code: c
    for c in [
        Currency("USD", "US Dollar", "$", 2),
        Currency("EUR", "Euro", "€", 2),
        Currency("GBP", "British Pound", "£", 2),
        Currency("JPY", "Japanese Yen", "¥", 0),
        Currency("CHF", "Swiss Franc", "CHF", 2),
        Currency("CAD", "Canadian Dollar", "C$", 2),
        Currency("AUD", "Australian Dollar", "A$", 2),
        Currency("NZD", "New Zealand Dollar", "NZ$", 2),
        Currency("CNY", "Chinese Yuan", "¥", 2),
        Currency("INR", "Indian Rupee", "₹", 2),
        Currency("KRW", "South Korean Won", "₩", 0),
        Currency("SGD", "Singapore Dollar", "S$", 2),
        Currency("HKD", "Hong Kong Dollar", "HK$", 2),
        Currency("ZAR", "South African Rand", "R", 2),
        Currency("NGN", "Nigerian Naira", "₦", 2),
        Currency("KES", "Kenyan Shilling", "KSh", 2),
        Currency("TZS", "Tanzanian Shilling", "TSh", 2),
        Currency("UGX", "Ugandan Shilling", "USh", 0),
        Currency("GHS", "Ghanaian Cedi", "₵", 2),
        Currency("BRL", "Brazilian Real", "R$", 2),
        Currency("MXN", "Mexican Peso", "$", 2),
    ]
}

# Separators by language prefix: (thousands, decimal)
_SEPARATORS = {
    "en": (",", "."),
    "de": (".", ","),
    "es": (".", ","),
    "it": (".", ","),
    "nl": (".", ","),
    "pt": (".", ","),
    "fr": (" ", ","),
    "ru": (" ", ","),
    "pl": (" ", ","),
}


def get_currency(code: str) -> Optional[Currency]:
    return CURRENCIES.get(code.upper())


def format_currency(
    amount: Union[Decimal, float, int],
    currency_code: str = "USD",
    locale: str = "en-US",
) -> str:
    """
    Format an amount with the currency symbol and its decimal places.

    Unknown currency codes fall back to a dollar sign with two decimals.
    """
    currency = get_currency(currency_code)
    symbol = currency.symbol if currency else "$"
    decimals = currency.decimals if currency else 2

    quantum = Decimal(1).scaleb(-decimals)
    value = Decimal(str(amount)).quantize(quantum, rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    text = f"{abs(value):,.{decimals}f}"

    thousands, decimal_sep = _SEPARATORS.get(locale.split("-")[0].lower(), (",", "."))
    text = text.replace(",", "\0").replace(".", decimal_sep).replace("\0", thousands)
    return f"{sign}{symbol}{text}"


def format_date(value: Optional[dt.date], prefs: Optional[LocalePreferences] = None) -> str:
    """Render a date with the configured date format, or an empty string."""
    if value is None:
        return ""
    date_format = prefs.date_format if prefs else DateFormat.US
    return value.strftime(date_format.strftime_pattern)
