from __future__ import annotations
from dataclasses import dataclass
from functools import total_ordering
from math import isqrt
from typing import List, Tuple


DIGITS = "0123456789ABCDEF"

KIND_DIVIDE_BY_ZERO = "divide_by_zero"
KIND_MODULO_BY_ZERO = "modulo_by_zero"
KIND_BAD_EXPONENT = "bad_exponent"
KIND_NEGATIVE_SQRT = "negative_sqrt"
KIND_BAD_NUMBER = "bad_number"


class NumberError(ArithmeticError):
    """Raised by the number engine; `kind` names the runtime error class."""

    def __init__(self, message: str, kind: str) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind


def _tdiv(numerator: int, denominator: int) -> int:
    # Integer division truncating toward zero, as bc does.
    quotient = abs(numerator) // abs(denominator)
    return -quotient if (numerator < 0) != (denominator < 0) else quotient


@total_ordering
@dataclass(frozen=True, eq=False)
class Number:
    value: int
    scale: int = 0

    def __post_init__(self) -> None:
        if self.scale < 0:
            raise ValueError("scale must be non-negative")

    @classmethod
    def from_int(cls, value: int) -> "Number":
        return cls(int(value), 0)

    @classmethod
    def parse(cls, text: str, base: int = 10) -> "Number":
        raw = text.strip()
        negative = raw.startswith("-")
        if negative:
            raw = raw[1:]
        whole, dot, frac = raw.partition(".")
        if (not whole and not frac) or any(ch not in DIGITS for ch in whole + frac):
            raise NumberError(f"invalid number '{text}'", KIND_BAD_NUMBER)
        if not dot and len(whole) == 1:
            # Single digits keep their own value whatever the input base.
            result = cls(DIGITS.index(whole), 0)
        elif base == 10 and (whole + frac).isdigit():
            result = cls(int(whole + frac), len(frac))
        else:
            int_value = 0
            for ch in whole:
                int_value = int_value * base + DIGITS.index(ch)
            frac_value = 0
            for ch in frac:
                frac_value = frac_value * base + DIGITS.index(ch)
            scale = len(frac)
            shifted = frac_value * 10 ** scale // base ** scale
            result = cls(int_value * 10 ** scale + shifted, scale)
        return -result if negative else result

    # ---- inspection ----

    def is_zero(self) -> bool:
        return self.value == 0

    def is_negative(self) -> bool:
        return self.value < 0

    def is_integer(self) -> bool:
        return self.value % 10 ** self.scale == 0

    def to_int(self) -> int:
        return _tdiv(self.value, 10 ** self.scale)

    def length(self) -> int:
        return max(len(str(abs(self.value))), self.scale)

    def rescale(self, scale: int) -> "Number":
        """Return this value at `scale` digits, truncating when narrowing."""
        if scale == self.scale:
            return self
        if scale > self.scale:
            return Number(self.value * 10 ** (scale - self.scale), scale)
        return Number(_tdiv(self.value, 10 ** (self.scale - scale)), scale)

    def _aligned(self, other: "Number") -> Tuple[int, int, int]:
        scale = max(self.scale, other.scale)
        return (
            self.value * 10 ** (scale - self.scale),
            other.value * 10 ** (scale - other.scale),
            scale,
        )

    # ---- comparison ----

    def compare(self, other: "Number") -> int:
        left, right, _ = self._aligned(other)
        return (left > right) - (left < right)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Number):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other: "Number") -> bool:
        return self.compare(other) < 0

    def __hash__(self) -> int:
        value, scale = self.value, self.scale
        while scale and value % 10 == 0:
            value //= 10
            scale -= 1
        return hash((value, scale))

    # ---- arithmetic ----

    def __neg__(self) -> "Number":
        return Number(-self.value, self.scale)

    def add(self, other: "Number") -> "Number":
        left, right, scale = self._aligned(other)
        return Number(left + right, scale)

    def sub(self, other: "Number") -> "Number":
        left, right, scale = self._aligned(other)
        return Number(left - right, scale)

    def mul(self, other: "Number", scale: int) -> "Number":
        full = self.scale + other.scale
        product = Number(self.value * other.value, full)
        return product.rescale(min(full, max(scale, self.scale, other.scale)))

    def div(self, other: "Number", scale: int) -> "Number":
        if other.is_zero():
            raise NumberError("divide by zero", KIND_DIVIDE_BY_ZERO)
        shift = scale + other.scale - self.scale
        if shift >= 0:
            quotient = _tdiv(self.value * 10 ** shift, other.value)
        else:
            quotient = _tdiv(self.value, other.value * 10 ** -shift)
        return Number(quotient, scale)

    def mod(self, other: "Number", scale: int) -> "Number":
        if other.is_zero():
            raise NumberError("modulo by zero", KIND_MODULO_BY_ZERO)
        quotient = self.div(other, scale)
        product = Number(quotient.value * other.value, quotient.scale + other.scale)
        return self.sub(product).rescale(max(scale + other.scale, self.scale))

    def pow(self, other: "Number", scale: int) -> "Number":
        if not other.is_integer():
            raise NumberError("non-integer exponent", KIND_BAD_EXPONENT)
        exponent = other.to_int()
        if exponent < 0:
            raise NumberError("negative exponent", KIND_BAD_EXPONENT)
        if exponent == 0:
            return Number(1, 0)
        full = self.scale * exponent
        result = Number(self.value ** exponent, full)
        return result.rescale(min(full, max(scale, self.scale)))

    def sqrt(self, scale: int) -> "Number":
        if self.is_negative():
            raise NumberError("square root of negative number", KIND_NEGATIVE_SQRT)
        result_scale = max(scale, self.scale)
        root = isqrt(self.value * 10 ** (2 * result_scale - self.scale))
        return Number(root, result_scale)

    # ---- output ----

    def to_string(self, base: int = 10) -> str:
        if self.value == 0:
            return "0"
        sign = "-" if self.value < 0 else ""
        unit = 10 ** self.scale
        int_part, frac_part = divmod(abs(self.value), unit)
        if base == 10:
            text = str(int_part) if int_part else ""
            if self.scale:
                text += "." + str(frac_part).rjust(self.scale, "0")
            return sign + text

        digits: List[int] = []
        while int_part:
            int_part, digit = divmod(int_part, base)
            digits.append(digit)
        text = "".join(_format_digit(d, base) for d in reversed(digits))
        if self.scale:
            text += "."
            precision = 1
            while len(str(precision)) <= self.scale:
                digit, frac_part = divmod(frac_part * base, unit)
                text += _format_digit(digit, base)
                precision *= base
        return sign + text

    def __str__(self) -> str:
        return self.to_string(10)


def _format_digit(digit: int, base: int) -> str:
    if base <= 16:
        return DIGITS[digit]
    return " " + str(digit).rjust(len(str(base - 1)), "0")


def wrap_output(text: str, column: int, line_length: int) -> Tuple[str, int]:
    """Insert backslash-newline continuations; return the text and the new column."""
    if line_length < 3:
        for ch in text:
            column = 0 if ch == "\n" else column + 1
        return text, column
    out: List[str] = []
    limit = line_length - 1
    for ch in text:
        if ch == "\n":
            column = 0
        else:
            column += 1
            if column == limit:
                out.append("\\\n")
                column = 1
        out.append(ch)
    return "".join(out), column
