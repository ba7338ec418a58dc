"""
pt-BR number formatting for values written to the sheets.

The workbooks use a comma as decimal separator and a dot for thousands, and
Sheets parses ``USER_ENTERED`` input with that locale, so numbers are sent
as the text a user would have typed.
"""
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

_STRIP = re.compile(r"[R$%\s ]")


def to_decimal(value):
    if isinstance(value, bool):
        raise ValueError("not a number: %r" % value)
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, (int, float)):
        d = Decimal(str(value))
    else:
        d = Decimal(str(parse_decimal(value)))
    if not d.is_finite():
        raise ValueError("not a number: %r" % value)
    return d


def parse_decimal(text):
    """
    '1.234,5' -> 1234.5, '12,5%' -> 12.5, 'R$ 10' -> 10.0, '1.5' -> 1.5.

    With both separators present the dot groups thousands; a lone comma is
    the decimal point; several dots with no comma are thousands groups.
    """
    if isinstance(text, (int, float)) and not isinstance(text, bool):
        return float(text)
    s = _STRIP.sub("", str(text or ""))
    if not s:
        raise ValueError("empty number")
    if "," in s:
        s = s.replace(".", "").replace(",", ".")
    elif s.count(".") > 1:
        s = s.replace(".", "")
    try:
        d = Decimal(s)
    except InvalidOperation:
        raise ValueError("not a number: %r" % text)
    if not d.is_finite():
        raise ValueError("not a number: %r" % text)
    f = float(d)
    if f in (float("inf"), float("-inf")):
        raise ValueError("number out of range: %r" % (text,))
    return f


def _quantize(value, places):
    exp = Decimal(1).scaleb(-places)
    try:
        return to_decimal(value).quantize(exp, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError("number out of range: %r" % (value,))


def format_decimal(value, places=1):
    """1.25 -> '1,3'; no thousands grouping."""
    return format(_quantize(value, places), "f").replace(".", ",")


def format_plain_decimal(value):
    """0.25 -> '0,25': keeps the submitted precision, only swaps the separator."""
    return format(to_decimal(value), "f").replace(".", ",")


def format_integer(value):
    return format(_quantize(value, 0), "f")


def format_percent(value, places=2):
    """12.5 -> '12,50%'."""
    return format_decimal(value, places) + "%"


def format_currency(value):
    """1234.5 -> 'R$ 1.234,50'."""
    q = _quantize(value, 2)
    sign = "-" if q < 0 else ""
    whole, frac = format(abs(q), "f").split(".")
    grouped = "{:,}".format(int(whole)).replace(",", ".")
    return "R$ %s%s,%s" % (sign, grouped, frac)
