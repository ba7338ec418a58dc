"""
Row/column helpers for sheets that have no row identity beyond position.

A write always starts from a fresh full-range read: ``locate_row`` turns a
business key into the sheet row number of *that* snapshot, and the number is
only good until someone edits the sheet. There is no locking to prevent it.
"""
import string
from types import MappingProxyType

from errors import InvalidFieldError


def column_index_to_letter(idx0):
    """0 -> A, 25 -> Z, 26 -> AA (base 26 without a zero digit)."""
    if idx0 < 0:
        raise ValueError("column index must be >= 0, got %r" % idx0)
    n = idx0 + 1
    s = ""
    while n:
        n, rem = divmod(n - 1, 26)
        s = string.ascii_uppercase[rem] + s
    return s


def column_letter_to_index(letters):
    letters = letters.strip().upper()
    if not letters or any(ch not in string.ascii_uppercase for ch in letters):
        raise ValueError("invalid column letters: %r" % letters)
    n = 0
    for ch in letters:
        n = n * 26 + (ord(ch) - 64)
    return n - 1


def quote_sheet_name(sheet_name):
    return "'%s'" % sheet_name.replace("'", "''")


def a1_range(sheet_name, start, end=None):
    """a1_range('BASE', 'A', 'R') -> "'BASE'!A:R"; a1_range('BASE', 'J7') -> "'BASE'!J7"."""
    rng = start if end is None else "%s:%s" % (start, end)
    return "%s!%s" % (quote_sheet_name(sheet_name), rng)


def cell(row, idx0):
    """Cell value at a zero-based column; rows from the API drop trailing blanks."""
    if row is None or idx0 >= len(row):
        return ""
    val = row[idx0]
    return "" if val is None else val


def _key_is_blank(key_values):
    if not key_values:
        return True
    return any(v is None or (isinstance(v, str) and v == "") for v in key_values)


def _matches(row, key_columns, key_values):
    return all(cell(row, c) == v for c, v in zip(key_columns, key_values))


def locate_row(rows, key_columns, key_values, offset=1):
    """
    Return the sheet row number of the first data row whose cells at
    ``key_columns`` equal ``key_values`` (exact string equality), or None.

    ``rows[0]`` is the header and is skipped. The result is
    ``array_index + offset``; with the default offset of 1 a read that starts
    at sheet row 1 maps ``rows[i]`` to sheet row ``i + 1``.
    """
    if len(key_columns) != len(key_values):
        raise ValueError("key_columns and key_values differ in length")
    if _key_is_blank(key_values):
        return None
    for i in range(1, len(rows)):
        if _matches(rows[i], key_columns, key_values):
            return i + offset
    return None


def locate_rows(rows, key_columns, key_values, where=None, offset=1):
    """Every matching sheet row number, in document order; ``where(row)`` filters further."""
    if len(key_columns) != len(key_values):
        raise ValueError("key_columns and key_values differ in length")
    if _key_is_blank(key_values):
        return []
    out = []
    for i in range(1, len(rows)):
        r = rows[i]
        if _matches(r, key_columns, key_values) and (where is None or where(r)):
            out.append(i + offset)
    return out


def normalize_cluster_name(name):
    """'calouro-iniciante' -> 'CALOURO_INICIANTE'. Only the PEX cluster lookup uses this."""
    return (name or "").strip().upper().replace("-", "_")


class FieldColumnMap:
    """Immutable logical-field -> zero-based column table for one sheet."""

    def __init__(self, sheet, columns):
        self.sheet = sheet
        self._columns = MappingProxyType(dict(columns))

    def __contains__(self, field):
        return field in self._columns

    def __iter__(self):
        return iter(self._columns)

    def __len__(self):
        return len(self._columns)

    def column(self, field):
        try:
            return self._columns[field]
        except KeyError:
            raise InvalidFieldError("Campo inválido para %s: %s" % (self.sheet, field))

    def letter(self, field):
        return column_index_to_letter(self.column(field))
