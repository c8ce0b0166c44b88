"""
Cross-engine value equivalence.

Values are compared through a canonical form: two values are equivalent
exactly when their canonical forms are equal, so equivalence stays
reflexive, symmetric and transitive whatever tolerance rules are enabled.
"""

import logging
import re
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from .dialect import DatabaseType, to_hex
from .model import Column, Row, TablePairing, TypeCategory

logger = logging.getLogger(__name__)

# DB2 renders timestamps as 2024-01-31-13.45.10.123456
_DB2_TIMESTAMP = re.compile(
    r"^(\d{4}-\d{2}-\d{2})-(\d{2})\.(\d{2})\.(\d{2})(\.\d+)?$"
)


class ValueComparator:
    """
    Decides whether two column values from (possibly) different engines match.

    Tolerance rules are chosen for the (source engine, target engine) pair:
    the coarser timestamp precision of the two decides how many fractional
    second digits take part in the comparison. When either engine stores
    timestamps on a fixed tick grid (SQL Server DATETIME), timestamps are
    rounded onto that grid instead.
    """

    def __init__(
        self,
        source_type: DatabaseType,
        target_type: DatabaseType,
        numeric_tolerance: bool = True,
        temporal_tolerance: bool = True,
        text_tolerance: bool = True,
        binary_tolerance: bool = True,
    ):
        self.source_type = source_type
        self.target_type = target_type
        self.numeric_tolerance = numeric_tolerance
        self.temporal_tolerance = temporal_tolerance
        self.text_tolerance = text_tolerance
        self.binary_tolerance = binary_tolerance
        self.timestamp_precision = min(
            source_type.timestamp_precision, target_type.timestamp_precision
        )
        self.timestamp_ticks = (
            source_type.timestamp_ticks_per_second
            or target_type.timestamp_ticks_per_second
        )

    # ------------------------------------------------------------------
    # Canonical forms
    # ------------------------------------------------------------------

    def normalize(self, column: Column, value: Any) -> Any:
        """Canonical form of ``value`` under the rules for ``column``'s category."""
        return self._normalize(column.category, value)

    def _normalize(self, category: TypeCategory, value: Any) -> Any:
        if value is None:
            return None

        if category is TypeCategory.OTHER:
            category = _category_of(value)

        if category is TypeCategory.NUMERIC and self.numeric_tolerance:
            return _canonical_number(value)
        if category is TypeCategory.TEMPORAL and self.temporal_tolerance:
            return self._canonical_temporal(value)
        if category is TypeCategory.TEXT and self.text_tolerance:
            text = value if isinstance(value, str) else str(value)
            return text.rstrip(" ")
        if category is TypeCategory.BINARY:
            if self.binary_tolerance:
                return to_hex(value)
            if isinstance(value, (bytearray, memoryview)):
                return bytes(value)
        return value

    def _canonical_temporal(self, value: Any) -> Any:
        if isinstance(value, str):
            parsed = _parse_temporal(value.strip())
            if parsed is None:
                return value.rstrip(" ")
            value = parsed

        if isinstance(value, datetime):
            if value.tzinfo is not None:
                value = value.astimezone(timezone.utc).replace(tzinfo=None)
            return self._round_datetime(value)
        if isinstance(value, date):
            return datetime.combine(value, time())
        if isinstance(value, time):
            return value.replace(
                microsecond=self._truncate(value.microsecond), tzinfo=None
            )
        return value

    def _round_datetime(self, value: datetime) -> datetime:
        if self.timestamp_ticks is None:
            return value.replace(microsecond=self._truncate(value.microsecond))

        # Round half up onto the tick grid; the last tick carries into the next second
        ticks = (value.microsecond * self.timestamp_ticks + 500_000) // 1_000_000
        whole_seconds = value.replace(microsecond=0)
        if ticks == self.timestamp_ticks:
            return whole_seconds + timedelta(seconds=1)
        return whole_seconds.replace(
            microsecond=ticks * 1_000_000 // self.timestamp_ticks
        )

    def _truncate(self, microsecond: int) -> int:
        unit = 10 ** (6 - self.timestamp_precision)
        return microsecond - microsecond % unit

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    def equivalent(
        self,
        pairing: TablePairing,
        source_column: Column,
        source_value: Any,
        target_column: Column,
        target_value: Any,
    ) -> bool:
        """
        True when the two values represent the same datum.

        Both values are normalized under one category so that, for example,
        a NUMERIC source column compared with a TEXT target column still
        matches ``10.00`` with ``10``.
        """
        if source_value is None or target_value is None:
            return source_value is None and target_value is None

        category = _shared_category(source_column, target_column)
        return self._normalize(category, source_value) == self._normalize(
            category, target_value
        )

    def compare_primary_keys(
        self,
        pairing: TablePairing,
        source_row: Row,
        target_row: Row,
    ) -> int:
        """
        Order two rows by their mapped primary-key tuples.

        Numbers compare numerically, timestamps chronologically and
        everything else as text by code point. For text keys this matches
        the ORDER BY of both sides only under a binary or code-point
        collation (DB2 is forced into one by its dialect).

        Returns:
            -1, 0 or 1 as the source key sorts before, equal to, or after
            the target key
        """
        for source_column, target_column in pairing.primary_key_pairs():
            category = _shared_category(source_column, target_column)
            left = self._normalize(category, source_row.get(source_column.name))
            right = self._normalize(category, target_row.get(target_column.name))
            result = _compare_keys(left, right)
            if result:
                return result
        return 0


def _shared_category(source_column: Column, target_column: Column) -> TypeCategory:
    if source_column.category is not TypeCategory.OTHER:
        return source_column.category
    return target_column.category


def _category_of(value: Any) -> TypeCategory:
    if isinstance(value, bool):
        return TypeCategory.OTHER
    if isinstance(value, (int, float, Decimal)):
        return TypeCategory.NUMERIC
    if isinstance(value, (datetime, date, time)):
        return TypeCategory.TEMPORAL
    if isinstance(value, (bytes, bytearray, memoryview)):
        return TypeCategory.BINARY
    return TypeCategory.OTHER


def _canonical_number(value: Any) -> Any:
    if isinstance(value, bool):
        value = int(value)
    try:
        if isinstance(value, float):
            number = Decimal(repr(value))
        elif isinstance(value, (int, Decimal)):
            number = Decimal(value)
        else:
            number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return str(value).rstrip(" ")

    if number.is_nan():
        # NaN never equals itself as a Decimal
        return "NaN"
    if number.is_infinite():
        return number
    if number.is_zero():
        return Decimal(0)
    return number.normalize()


def _parse_temporal(text: str) -> datetime | date | time | None:
    match = _DB2_TIMESTAMP.match(text)
    if match:
        day, hour, minute, second, fraction = match.groups()
        text = f"{day} {hour}:{minute}:{second}{fraction or ''}"

    for parser in (datetime.fromisoformat, time.fromisoformat):
        try:
            return parser(text)
        except ValueError:
            continue
    return None


def _compare_keys(left: Any, right: Any) -> int:
    if left == right:
        return 0
    # NULL keys sort first
    if left is None:
        return -1
    if right is None:
        return 1

    if isinstance(left, Decimal) and isinstance(right, Decimal):
        return -1 if left < right else 1
    if isinstance(left, datetime) and isinstance(right, datetime):
        return -1 if left < right else 1
    if isinstance(left, time) and isinstance(right, time):
        return -1 if left < right else 1

    left_text, right_text = _key_text(left), _key_text(right)
    if left_text == right_text:
        return 0
    return -1 if left_text < right_text else 1


def _key_text(value: Any) -> str:
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, (bytes, bytearray, memoryview)):
        return to_hex(value)
    return str(value)
