"""Form validation package."""

from bookkeeper.validation.validator import FormValidator, parse_date, parse_decimal

__all__ = ["FormValidator", "parse_date", "parse_decimal"]
