import logging

from errors import UpstreamError, ValidationError, WriteFailedError
from sheet_rows import a1_range

logger = logging.getLogger(__name__)


class CellWriter:
    """
    Writes one logical field of an already-located row.

    ``field_map`` is a FieldColumnMap; ``formatters`` maps a field to a
    callable turning the submitted value into the text written to the sheet
    (``str`` when absent). Values go in as USER_ENTERED so Sheets applies its
    own parsing, except for fields listed in ``raw_fields``.

    The writer knows nothing about the cache: invalidation is the caller's job.
    """

    def __init__(self, sheets, spreadsheet_id, field_map, formatters=None, raw_fields=()):
        self.sheets = sheets
        self.spreadsheet_id = spreadsheet_id
        self.field_map = field_map
        self.formatters = dict(formatters or {})
        self.raw_fields = frozenset(raw_fields)

    def format_value(self, field, raw_value):
        fmt = self.formatters.get(field, str)
        try:
            return fmt(raw_value)
        except (TypeError, ValueError, ArithmeticError) as e:
            raise ValidationError("Valor inválido para %s: %r (%s)" % (field, raw_value, e))

    def target(self, sheet_name, row_number, field):
        return a1_range(sheet_name, "%s%d" % (self.field_map.letter(field), row_number))

    def update(self, sheet_name, row_number, field, raw_value):
        rng = self.target(sheet_name, row_number, field)
        value = self.format_value(field, raw_value)
        option = "RAW" if field in self.raw_fields else "USER_ENTERED"
        try:
            self.sheets.update_values(self.spreadsheet_id, rng, [[value]], value_input_option=option)
        except UpstreamError as e:
            raise WriteFailedError(e.message)
        logger.info("wrote %s = %r", rng, value)
        return True
