"""
Table and column descriptors used by every comparison component.

Descriptors are immutable value objects: a TablePairing is resolved once per
table before any row is read and never changes while the table is compared.
"""

import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# A row as materialized by a data source: column name -> value
Row = dict[str, Any]


class TypeCategory(str, Enum):
    """Logical type tag used to pick the value equivalence rule."""

    TEXT = "text"
    NUMERIC = "numeric"
    TEMPORAL = "temporal"
    BINARY = "binary"
    OTHER = "other"

    @classmethod
    def from_type_name(cls, type_name: str | None) -> "TypeCategory":
        """
        Map an engine type name (as reported by the catalog) to a category.

        >>> TypeCategory.from_type_name("character varying(40)")
        <TypeCategory.TEXT: 'text'>
        >>> TypeCategory.from_type_name("VARCHAR () FOR BIT DATA")
        <TypeCategory.BINARY: 'binary'>
        """
        if not type_name:
            return cls.OTHER

        normalized = re.sub(r"\(.*?\)", "", type_name.lower())
        normalized = " ".join(normalized.split())

        if "for bit data" in normalized or normalized in _BINARY_TYPES:
            return cls.BINARY
        if normalized in _TEXT_TYPES:
            return cls.TEXT
        if normalized in _NUMERIC_TYPES:
            return cls.NUMERIC
        if normalized in _TEMPORAL_TYPES or normalized.startswith("timestamp"):
            return cls.TEMPORAL
        return cls.OTHER


_TEXT_TYPES = frozenset({
    "char", "character", "nchar", "varchar", "nvarchar", "character varying",
    "national character varying", "text", "ntext", "bpchar", "citext", "clob",
    "dbclob", "graphic", "vargraphic", "long varchar", "string", "name",
})
_NUMERIC_TYPES = frozenset({
    "int", "integer", "int2", "int4", "int8", "smallint", "bigint", "tinyint",
    "decimal", "dec", "numeric", "number", "decfloat", "real", "float",
    "float4", "float8", "double", "double precision", "money", "smallmoney",
    "serial", "bigserial", "smallserial",
})
_TEMPORAL_TYPES = frozenset({
    "date", "time", "datetime", "datetime2", "smalldatetime",
    "datetimeoffset", "time with time zone", "time without time zone",
    "timetz",
})
_BINARY_TYPES = frozenset({
    "binary", "varbinary", "bytea", "blob", "image", "long varbinary",
})


@dataclass(frozen=True)
class Column:
    """Column descriptor."""

    name: str
    category: TypeCategory = TypeCategory.OTHER
    nullable: bool = True
    primary_key: bool = False
    type_name: str | None = None

    @property
    def is_text(self) -> bool:
        return self.category is TypeCategory.TEXT

    @property
    def is_binary(self) -> bool:
        return self.category is TypeCategory.BINARY


@dataclass(frozen=True)
class Table:
    """
    Table descriptor.

    ``primary_key_columns`` is an ordered subset of ``columns``; its order is
    the merge order used when comparing the table.
    """

    name: str
    columns: tuple[Column, ...] = ()
    primary_key_columns: tuple[Column, ...] = ()
    catalog: str | None = None
    schema: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "columns", tuple(self.columns))
        object.__setattr__(self, "primary_key_columns", tuple(self.primary_key_columns))
        missing = [c.name for c in self.primary_key_columns if c not in self.columns]
        if missing:
            raise ValueError(
                f"Primary key columns {missing} are not columns of {self.name}"
            )

    @classmethod
    def build(
        cls,
        name: str,
        columns: Iterable[Column],
        primary_key: Iterable[str] = (),
        catalog: str | None = None,
        schema: str | None = None,
    ) -> "Table":
        """Build a table, flagging the named columns as primary key (in that order)."""
        pk_names = [n.lower() for n in primary_key]
        flagged = tuple(
            Column(
                name=c.name,
                category=c.category,
                nullable=c.nullable and c.name.lower() not in pk_names,
                primary_key=c.name.lower() in pk_names,
                type_name=c.type_name,
            )
            for c in columns
        )
        by_name = {c.name.lower(): c for c in flagged}
        unknown = [n for n in pk_names if n not in by_name]
        if unknown:
            raise ValueError(f"Unknown primary key columns {unknown} for table {name}")
        return cls(
            name=name,
            columns=flagged,
            primary_key_columns=tuple(by_name[n] for n in pk_names),
            catalog=catalog,
            schema=schema,
        )

    @property
    def fully_qualified_name(self) -> str:
        return ".".join(p for p in (self.catalog, self.schema, self.name) if p)

    @property
    def has_primary_key(self) -> bool:
        return bool(self.primary_key_columns)

    @property
    def primary_key_names(self) -> list[str]:
        return [c.name for c in self.primary_key_columns]

    def find_column(self, name: str) -> Column | None:
        """Case-insensitive column lookup."""
        wanted = name.strip().lower()
        for column in self.columns:
            if column.name.lower() == wanted:
                return column
        return None

    def __str__(self) -> str:
        return self.fully_qualified_name


class ColumnMapping:
    """
    One-to-one, partial mapping from source columns to target columns.

    Source columns without a target are ignored when synthesizing inserts;
    target columns without a source are never written.
    """

    def __init__(self, pairs: Iterable[tuple[Column, Column]] = ()):
        self._forward: dict[Column, Column] = {}
        self._reverse: dict[Column, Column] = {}
        for source, target in pairs:
            if source in self._forward:
                raise ValueError(f"Source column {source.name} mapped twice")
            if target in self._reverse:
                raise ValueError(
                    f"Target column {target.name} already mapped from "
                    f"{self._reverse[target].name}"
                )
            self._forward[source] = target
            self._reverse[target] = source

    @classmethod
    def by_name(
        cls,
        source: Table,
        target: Table,
        overrides: Mapping[str, str] | None = None,
    ) -> "ColumnMapping":
        """
        Match columns by case-insensitive name, then apply overrides.

        ``overrides`` maps source column names to target column names and
        replaces the name-based association of those source columns. Names
        that do not resolve on either side are ignored.
        """
        associations: dict[Column, Column] = {}
        for source_column in source.columns:
            target_column = target.find_column(source_column.name)
            if target_column is not None:
                associations[source_column] = target_column

        for source_name, target_name in (overrides or {}).items():
            source_column = source.find_column(source_name)
            target_column = target.find_column(target_name)
            if source_column is None or target_column is None:
                continue
            # Free the target column from any name-based association first
            for other, mapped in list(associations.items()):
                if mapped == target_column and other != source_column:
                    del associations[other]
            associations[source_column] = target_column

        return cls(
            (source_column, associations[source_column])
            for source_column in source.columns
            if source_column in associations
        )

    def target_for(self, source_column: Column) -> Column | None:
        return self._forward.get(source_column)

    def source_for(self, target_column: Column) -> Column | None:
        return self._reverse.get(target_column)

    def __iter__(self) -> Iterator[tuple[Column, Column]]:
        return iter(self._forward.items())

    def __len__(self) -> int:
        return len(self._forward)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ColumnMapping):
            return NotImplemented
        return self._forward == other._forward

    __hash__ = None

    def __repr__(self) -> str:
        pairs = ", ".join(f"{s.name}->{t.name}" for s, t in self._forward.items())
        return f"ColumnMapping({pairs})"


@dataclass(frozen=True)
class TablePairing:
    """A source table, the target it is compared with, and their column mapping."""

    source: Table
    target: Table
    mapping: ColumnMapping = field(compare=False)

    @property
    def name(self) -> str:
        return self.source.fully_qualified_name

    def primary_key_pairs(self) -> list[tuple[Column, Column]]:
        """
        Source primary-key columns paired with their mapped target columns,
        in source primary-key order.

        Raises:
            ValueError: if a source primary-key column has no target column
        """
        pairs = []
        for source_column in self.source.primary_key_columns:
            target_column = self.mapping.target_for(source_column)
            if target_column is None:
                raise ValueError(
                    f"Primary key column {source_column.name} of {self.source} "
                    f"is not mapped to {self.target}"
                )
            pairs.append((source_column, target_column))
        return pairs

    def check_primary_key_order(self) -> None:
        """
        Require the mapped source key to be exactly the target's primary key,
        column for column and in the same order.

        Both sides are read ordered by their own primary key, so the merge
        only lines up when the two key sequences agree.

        Raises:
            ValueError: if a key column is unmapped or the keys differ
        """
        mapped = [target_column for _, target_column in self.primary_key_pairs()]
        if mapped != list(self.target.primary_key_columns):
            raise ValueError(
                f"Primary key ({', '.join(self.source.primary_key_names)}) of "
                f"{self.source} maps to ({', '.join(c.name for c in mapped)}), "
                f"but the primary key of {self.target} is "
                f"({', '.join(self.target.primary_key_names)})"
            )

    def compared_pairs(self) -> list[tuple[Column, Column]]:
        """Mapped non-primary-key column pairs, in source column order."""
        return [
            (source_column, target_column)
            for source_column, target_column in self.mapping
            if not source_column.primary_key and not target_column.primary_key
        ]


class Classification(str, Enum):
    """Outcome of comparing one primary key across both sides."""

    MATCHED = "MATCHED"
    CHANGED = "CHANGED"
    SOURCE_ONLY = "SOURCE_ONLY"
    TARGET_ONLY = "TARGET_ONLY"
