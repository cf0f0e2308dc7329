"""
Fixed-rate currency normalization.

Every balance is expressed in the reporting currency before it is summed.
Rates come from configuration, never from a live feed, so re-running an old
aggregation reproduces the same numbers. The result is an approximation of
net worth, not an accounting-grade valuation.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Optional, Union

from networth.config import settings
from networth.core.exceptions import UnsupportedCurrency

CENTS = Decimal("0.01")

Amount = Union[Decimal, int, float, str]


class ValuationNormalizer:
    """Converts balances into the reporting currency with a static rate table."""

    def __init__(
        self,
        reporting_currency: Optional[str] = None,
        rates: Optional[Mapping[str, Decimal]] = None,
    ):
        self.reporting_currency = (reporting_currency or settings.REPORTING_CURRENCY).upper()
        source = settings.FX_RATES if rates is None else rates
        self.rates = {code.upper(): Decimal(str(rate)) for code, rate in source.items()}

    def rate_for(self, currency: Optional[str]) -> Decimal:
        """
        Return how many reporting-currency units one unit of ``currency`` is worth.

        A missing currency code is taken to mean the reporting currency.

        Raises:
            UnsupportedCurrency: currency is not in the fixed table
        """
        code = (currency or self.reporting_currency).upper()
        if code == self.reporting_currency:
            return Decimal("1")
        try:
            return self.rates[code]
        except KeyError:
            raise UnsupportedCurrency(code)

    def convert(self, balance: Amount, from_currency: Optional[str]) -> Decimal:
        """
        Convert ``balance`` into the reporting currency, rounded to cents.

        Floats are converted through ``str`` so 0.1 stays 0.1.
        """
        amount = balance if isinstance(balance, Decimal) else Decimal(str(balance))
        rate = self.rate_for(from_currency)
        if rate == 1:
            return amount.quantize(CENTS, rounding=ROUND_HALF_UP)
        return (amount * rate).quantize(CENTS, rounding=ROUND_HALF_UP)


valuation_normalizer = ValuationNormalizer()


def convert(balance: Amount, from_currency: Optional[str]) -> Decimal:
    """Module-level shortcut using the configured rate table."""
    return valuation_normalizer.convert(balance, from_currency)
