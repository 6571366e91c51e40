"""
Fixed-Point Money

DESIGN DECISION: All money is decimal.Decimal quantized to two places.
Floats never enter the ledger: a float input is converted through its
shortest repr ("0.1", not 0.1000000000000000055...) before quantization.

Money is signed (balances go negative). Amount is Money that is strictly
positive and is the only type an entry may carry.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation
from functools import total_ordering
from typing import Any, Optional, Union

from party_ledger.errors import ErrorKind, InvalidAmountError, ValidationIssue


CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# 34 significant digits leaves room for a million summed entries of any
# realistic size without the context rounding intermediate sums.
MONEY_CONTEXT = Context(prec=34, rounding=ROUND_HALF_UP)

MoneyInput = Union["Money", Decimal, int, float, str]


def _amount_error(message: str, value: Any) -> InvalidAmountError:
    return InvalidAmountError(
        message,
        issues=[ValidationIssue(
            field="amount",
            kind=ErrorKind.INVALID_AMOUNT,
            message=message,
            received=repr(value),
        )],
    )


def parse_decimal(value: Any) -> Decimal:
    """
    Parse user input into a finite Decimal.

    Raises:
        InvalidAmountError: If the value is not a finite number
    """
    if isinstance(value, Money):
        return value.value
    if isinstance(value, bool):
        raise _amount_error("Amount must be a number", value)
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, int):
        parsed = Decimal(value)
    elif isinstance(value, float):
        parsed = Decimal(repr(value))
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise _amount_error("Amount is required", value)
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            raise _amount_error(f"Amount is not a number: {value!r}", value)
    else:
        raise _amount_error("Amount must be a number", value)

    if not parsed.is_finite():
        raise _amount_error("Amount must be a finite number", value)
    return parsed


@total_ordering
@dataclass(frozen=True, eq=False)
class Money:
    """
    Signed monetary value with exactly two fractional digits.

    Arithmetic between Money values always returns Money and is exact.
    """

    value: Decimal

    def __post_init__(self) -> None:
        raw = parse_decimal(self.value)
        try:
            quantized = raw.quantize(CENT, rounding=ROUND_HALF_UP, context=MONEY_CONTEXT)
        except InvalidOperation:
            raise _amount_error("Amount is too large", self.value)
        if quantized.is_zero():
            quantized = ZERO
        object.__setattr__(self, "value", quantized)

    @classmethod
    def of(cls, value: MoneyInput) -> "Money":
        """Build from any supported numeric input."""
        if type(value) is cls:
            return value
        return cls(parse_decimal(value))

    @classmethod
    def zero(cls) -> "Money":
        return Money(ZERO)

    # -- arithmetic -----------------------------------------------------------

    def __add__(self, other: Any) -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return Money(MONEY_CONTEXT.add(self.value, other.value))

    def __sub__(self, other: Any) -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return Money(MONEY_CONTEXT.subtract(self.value, other.value))

    def __neg__(self) -> "Money":
        return Money(MONEY_CONTEXT.minus(self.value))

    # -- comparison -----------------------------------------------------------

    def _coerce(self, other: Any) -> Optional[Decimal]:
        if isinstance(other, Money):
            return other.value
        if isinstance(other, (Decimal, int)) and not isinstance(other, bool):
            return Decimal(other)
        return None

    def __eq__(self, other: Any) -> bool:
        other_value = self._coerce(other)
        if other_value is None:
            return NotImplemented
        return self.value == other_value

    def __lt__(self, other: Any) -> bool:
        other_value = self._coerce(other)
        if other_value is None:
            return NotImplemented
        return self.value < other_value

    def __hash__(self) -> int:
        return hash(self.value)

    @property
    def is_zero(self) -> bool:
        return self.value.is_zero()

    @property
    def is_negative(self) -> bool:
        return self.value < 0

    # -- formatting -----------------------------------------------------------

    def format(self) -> str:
        """Locale-stable text with two decimals and no grouping: '1234.50'."""
        return f"{self.value:.2f}"

    def format_display(self, currency: Optional[str] = None) -> str:
        """Grouped text for display: 'PKR 1,234.50'."""
        text = f"{self.value:,.2f}"
        return f"{currency} {text}" if currency else text

    def __str__(self) -> str:
        return self.format()


@dataclass(frozen=True, eq=False)
class Amount(Money):
    """
    Strictly positive Money. The only value a ledger entry may carry.

    Raises:
        InvalidAmountError: Unless the input is finite and greater than zero
            after rounding to cents
    """

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.value <= 0:
            raise _amount_error("Amount must be greater than zero", self.value)

