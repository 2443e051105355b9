"""
Data Normalizers Module.

This module converts the loosely typed values engines emit into the
canonical result types:
    - Date strings (ISO, slash, Japanese 年月日) to datetime.date
    - Amount strings/numbers (¥, 円, thousands separators) to float
"""

import re
from datetime import date, datetime
from typing import Any, List, Optional

from dateutil import parser as date_parser

from config import get_config
from tiered_extraction.utils.logger import get_logger

logger = get_logger(__name__)


class DateNormalizer:
    """
    Normalizes date values to ``datetime.date``.

    Tries the Japanese 年月日 pattern, then explicit formats, then the
    dateutil parser. Values without a year-like component are rejected
    rather than completed from today's date.

    Example:
        >>> normalizer = DateNormalizer()
        >>> normalizer.parse("2026年1月15日")
        datetime.date(2026, 1, 15)
        >>> normalizer.parse("not a date") is None
        True
    """

    JAPANESE_DATE = re.compile(r'(\d{4})\s*年\s*(\d{1,2})\s*月\s*(\d{1,2})\s*日')
    HAS_YEAR = re.compile(r'\d{4}|\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2}')

    # Reasonable date range for receipts
    MIN_YEAR = 2000
    MAX_YEAR = 2100

    DEFAULT_FORMATS = [
        "%Y-%m-%d",
        "%Y/%m/%d",
        "%Y年%m月%d日",
        "%Y.%m.%d",
        "%m/%d/%Y",
        "%d.%m.%Y",
    ]

    def __init__(self) -> None:
        """Initialize the date normalizer with configuration."""
        self.input_formats: List[str] = get_config(
            "postprocessing.date.input_formats",
            self.DEFAULT_FORMATS
        )

    def parse(self, value: Any) -> Optional[date]:
        """
        Parse a date value.

        Args:
            value: date/datetime instance or a date string.

        Returns:
            The parsed date, or None if the value is empty, unparseable
            or outside the plausible year range.
        """
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            return self._in_range(value.date())
        if isinstance(value, date):
            return self._in_range(value)
        if not isinstance(value, str):
            return None

        text = ' '.join(value.split())

        match = self.JAPANESE_DATE.search(text)
        if match:
            try:
                year, month, day = (int(part) for part in match.groups())
                return self._in_range(date(year, month, day))
            except ValueError:
                logger.debug(f"Invalid Japanese date: {text}")
                return None

        parsed = self._try_explicit_formats(text)
        if parsed is None and self.HAS_YEAR.search(text):
            parsed = self._try_dateutil_parser(text)

        if parsed is None:
            logger.debug(f"Could not parse date: {text}")
            return None
        return self._in_range(parsed.date())

    def _try_explicit_formats(self, date_str: str) -> Optional[datetime]:
        # ISO timestamps from models ("2026-01-15T00:00:00Z") keep only the date part
        candidate = date_str.split('T')[0] if re.match(r'^\d{4}-\d{2}-\d{2}T', date_str) else date_str
        for fmt in self.input_formats:
            try:
                return datetime.strptime(candidate, fmt)
            except ValueError:
                continue
        return None

    def _try_dateutil_parser(self, date_str: str) -> Optional[datetime]:
        try:
            return date_parser.parse(date_str, yearfirst=True, fuzzy=True)
        except (ValueError, OverflowError):
            return None

    def _in_range(self, value: date) -> Optional[date]:
        if self.MIN_YEAR <= value.year <= self.MAX_YEAR:
            return value
        logger.debug(f"Date {value} outside plausible range")
        return None

    def is_valid_date(self, value: Any) -> bool:
        """Check whether a value parses to a plausible date."""
        return self.parse(value) is not None


class AmountNormalizer:
    """
    Normalizes currency/amount values to float.

    Handles yen symbols (¥, ￥, 円), currency codes and thousands
    separators, as well as the European decimal comma.

    Example:
        >>> normalizer = AmountNormalizer()
        >>> normalizer.to_float("¥1,234")
        1234.0
        >>> normalizer.to_float("1.234,56 €")
        1234.56
    """

    DEFAULT_CURRENCIES = ['¥', '￥', '円', '$', '€', '£', 'JPY', 'USD', 'EUR']

    def __init__(self) -> None:
        """Initialize the amount normalizer with configuration."""
        self.currencies: List[str] = get_config(
            "postprocessing.amount.currencies",
            self.DEFAULT_CURRENCIES
        )

    def to_float(self, value: Any) -> Optional[float]:
        """
        Convert an amount to float.

        Args:
            value: int/float or an amount string.

        Returns:
            Float value, or None when the value is empty or unparseable.
        """
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return float(value)
        if not isinstance(value, str):
            return None

        cleaned = self._clean_amount_string(value)
        if not cleaned:
            return None

        cleaned = self._handle_european_format(cleaned)
        cleaned = cleaned.replace(',', '')

        try:
            return float(cleaned)
        except ValueError:
            logger.debug(f"Could not parse amount: {value}")
            return None

    def _clean_amount_string(self, amount_str: str) -> str:
        amount_str = ' '.join(amount_str.split())

        for currency in self.currencies:
            amount_str = amount_str.replace(currency, '')

        # Keep only digits, comma, dot, and minus
        amount_str = re.sub(r'[^\d,.\-]', '', amount_str)
        return amount_str.strip()

    def _handle_european_format(self, amount_str: str) -> str:
        """
        Convert a decimal comma (1.234,56) to a decimal dot (1234.56).
        """
        if amount_str.count(',') == 1:
            comma_pos = amount_str.rfind(',')
            dot_pos = amount_str.rfind('.')

            if comma_pos > dot_pos:
                after_comma = amount_str[comma_pos + 1:]
                if len(after_comma) <= 2 and after_comma.isdigit():
                    amount_str = amount_str.replace('.', '')
                    amount_str = amount_str.replace(',', '.')

        return amount_str

    def is_valid_amount(self, value: Any) -> bool:
        """Check whether a value parses to a non-negative amount."""
        amount = self.to_float(value)
        return amount is not None and amount >= 0
