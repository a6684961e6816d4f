"""
Currency Rate Table Module

Conversion factors from the base unit (Omani rial) to three fixed target
currencies, with proper Decimal precision. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from enum import Enum
from typing import Dict, Optional, Tuple
import threading

from .errors import ValidationError
from .logging_config import get_logger, log_action


BASE_CURRENCY_CODE = "OMR"


class Currency(Enum):
    """Target currencies with display precision, in persisted rate order"""
    USD = ("USD", 2)
    EUR = ("EUR", 2)
    SAR = ("SAR", 2)

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision


def to_decimal(value, field_name: str = "amount") -> Decimal:
    """Convert user input to Decimal, rejecting non-numeric values"""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field_name} must be a number, got {value!r}")
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    return result


class RateTable:
    """Mutable conversion factors; admin updates are persisted immediately"""

    def __init__(self, record_store, default_rates: Tuple[Decimal, Decimal, Decimal],
                 lock: Optional[threading.RLock] = None):
        self.record_store = record_store
        self._lock = lock or threading.RLock()
        self.logger = get_logger("minibank.currency")
        self._rates: Dict[Currency, Decimal] = dict(zip(Currency, default_rates))

    def load(self) -> None:
        """Replace defaults with persisted rates when present"""
        with self._lock:
            persisted = self.record_store.load_rates()
            if persisted:
                self._rates = dict(zip(Currency, persisted))

    def rates(self) -> Dict[Currency, Decimal]:
        with self._lock:
            return dict(self._rates)

    def rate(self, currency: Currency) -> Decimal:
        with self._lock:
            return self._rates[currency]

    def convert(self, amount, currency: Currency) -> Decimal:
        """Convert a base-unit amount into the target currency"""
        amount = to_decimal(amount)
        return amount * self.rate(currency)

    def convert_rounded(self, amount, currency: Currency) -> Decimal:
        """Convert and round to the target currency's precision"""
        return self.convert(amount, currency).quantize(
            Decimal('0.1') ** currency.precision, rounding=ROUND_HALF_UP
        )

    def set_rates(self, usd, eur, sar) -> Dict[Currency, Decimal]:
        """Replace all three factors and persist them"""
        new_rates = {}
        for currency, value in zip(Currency, (usd, eur, sar)):
            rate = to_decimal(value, f"{currency.code} rate")
            if rate <= 0:
                raise ValidationError(f"{currency.code} rate must be positive")
            new_rates[currency] = rate

        with self._lock:
            self._rates = new_rates
            log_action(
                self.logger, "info", "Exchange rates updated", action="set_rates",
                resource="rates", extra={c.code: str(r) for c, r in new_rates.items()}
            )
            self.save()
            return dict(self._rates)

    def save(self) -> None:
        with self._lock:
            self.record_store.save_rates(tuple(self._rates[c] for c in Currency))
