"""
Money rounding, amount coercion and currency validation shared by every
module.

Amounts are Decimals at two places, rounded half up.  Floats are refused
at the boundary (``to_money``) and never reach a column.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from rental_kernel.exceptions import InvalidAmountError, InvalidCurrencyError

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def round_money(value: Decimal) -> Decimal:
    """Quantize to cents, half up.  Used for every stored or compared amount."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def _to_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, (float, bool)):
        raise InvalidAmountError(field, repr(value), "must be a Decimal, int or numeric string")
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise InvalidAmountError(field, repr(value), "not a number") from exc
    if not amount.is_finite():
        raise InvalidAmountError(field, repr(value), "not a finite number")
    return amount


def to_money(value: Any, field: str = "amount") -> Decimal:
    """Coerce an int, numeric string or Decimal into a cent-rounded Decimal.

    Raises:
        InvalidAmountError: float or bool input, non-numeric text, NaN or infinity.
    """
    return round_money(_to_decimal(value, field))


def to_exact_cents(value: Any, field: str) -> Decimal:
    """Like ``to_money`` but rejects values with more than two decimal places."""
    amount = _to_decimal(value, field)
    if amount != amount.quantize(CENTS):
        raise InvalidAmountError(field, str(amount), "at most 2 decimal places")
    return amount.quantize(CENTS)


ISO_4217_CURRENCIES: frozenset[str] = frozenset(
    """
    AED AFN ALL AMD ANG AOA ARS AUD AWG AZN BAM BBD BDT BGN BHD BIF BMD BND
    BOB BRL BSD BTN BWP BYN BZD CAD CDF CHF CLP CNY COP CRC CUP CVE CZK DJF
    DKK DOP DZD EGP ERN ETB EUR FJD FKP GBP GEL GHS GIP GMD GNF GTQ GYD HKD
    HNL HTG HUF IDR ILS INR IQD IRR ISK JMD JOD JPY KES KGS KHR KMF KPW KRW
    KWD KYD KZT LAK LBP LKR LRD LSL LYD MAD MDL MGA MKD MMK MNT MOP MRU MUR
    MVR MWK MXN MYR MZN NAD NGN NIO NOK NPR NZD OMR PAB PEN PGK PHP PKR PLN
    PYG QAR RON RSD RUB RWF SAR SBD SCR SDG SEK SGD SHP SLE SOS SRD SSP STN
    SVC SYP SZL THB TJS TMT TND TOP TRY TTD TWD TZS UAH UGX USD UYU UZS VES
    VND VUV WST XAF XCD XOF XPF YER ZAR ZMW ZWL
    """.split()
)


def validate_currency(currency: Any) -> str:
    """Return the upper-cased ISO 4217 code or raise InvalidCurrencyError."""
    if not isinstance(currency, str) or not currency.strip():
        raise InvalidCurrencyError(str(currency))
    code = currency.strip().upper()
    if code not in ISO_4217_CURRENCIES:
        raise InvalidCurrencyError(currency)
    return code
