"""
Currency registry -- minor-unit precision per ISO 4217 code.

Budget buckets are rounded to the currency minor unit, so the allocator
needs the decimal places of the campaign currency.  Only currencies a
relief campaign can be denominated in are registered; anything else is
refused at campaign creation.
"""

from dataclasses import dataclass
from decimal import Decimal

from relief_kernel.exceptions import ValidationError


@dataclass(frozen=True)
class CurrencyInfo:
    code: str
    decimal_places: int
    name: str

    @property
    def minor_unit(self) -> Decimal:
        """Smallest representable amount (1 for VND, 0.01 for USD)."""
        return Decimal(1).scaleb(-self.decimal_places)


class CurrencyRegistry:
    """Lookup of supported currencies."""

    _CURRENCIES: dict[str, CurrencyInfo] = {
        "VND": CurrencyInfo("VND", 0, "Vietnamese Dong"),
        "USD": CurrencyInfo("USD", 2, "US Dollar"),
        "EUR": CurrencyInfo("EUR", 2, "Euro"),
        "GBP": CurrencyInfo("GBP", 2, "Pound Sterling"),
        "JPY": CurrencyInfo("JPY", 0, "Japanese Yen"),
        "KRW": CurrencyInfo("KRW", 0, "South Korean Won"),
        "THB": CurrencyInfo("THB", 2, "Thai Baht"),
        "SGD": CurrencyInfo("SGD", 2, "Singapore Dollar"),
        "KWD": CurrencyInfo("KWD", 3, "Kuwaiti Dinar"),
    }

    @classmethod
    def get(cls, code: str) -> CurrencyInfo:
        """
        Raises:
            ValidationError: if the code is not a supported currency.
        """
        normalized = (code or "").upper().strip()
        info = cls._CURRENCIES.get(normalized)
        if info is None:
            raise ValidationError("currency", f"unsupported currency code {code!r}")
        return info

    @classmethod
    def decimal_places(cls, code: str) -> int:
        return cls.get(code).decimal_places

    @classmethod
    def is_supported(cls, code: str) -> bool:
        return (code or "").upper().strip() in cls._CURRENCIES
