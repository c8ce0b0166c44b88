"""
Table pairing resolution.

Turns candidate table names into TablePairings: filters the names, reads
source and target metadata, redirects through an optional table transform
and builds the column mapping. Only metadata is read; rows are never
touched.
"""

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from opentelemetry import trace

from utils.tracing import add_span_attributes, trace_operation

from .dialect import Dialect
from .errors import ConfigurationError
from .metrics import TABLES_SKIPPED
from .model import ColumnMapping, Table, TablePairing

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableTransform:
    """Redirects a source table to a differently named target table."""

    target_table: str
    target_catalog: str | None = None
    target_schema: str | None = None
    # source column name -> target column name
    column_overrides: Mapping[str, str] = field(default_factory=dict)


# (source node group, target node group, source table name) -> transforms
TransformLookup = Callable[[str | None, str | None, str], Sequence[TableTransform]]


def split_table_name(name: str) -> tuple[str | None, str | None, str]:
    """
    Split ``table``, ``schema.table`` or ``catalog.schema.table``.

    >>> split_table_name("sales.orders")
    (None, 'sales', 'orders')
    """
    parts = [p.strip() for p in name.strip().split(".")]
    if len(parts) == 1:
        return None, None, parts[0]
    if len(parts) == 2:
        return None, parts[0], parts[1]
    if len(parts) == 3:
        return parts[0], parts[1], parts[2]
    raise ConfigurationError(f"Invalid table name: {name!r}")


def _same_name(left: str, right: str) -> bool:
    return left.strip().lower() == right.strip().lower()


def filter_tables(
    candidates: Sequence[str],
    include: Sequence[str] | None = None,
    exclude: Sequence[str] | None = None,
) -> list[str]:
    """
    Apply include then exclude filters to candidate table names.

    With a non-empty include list the survivors follow the include list's
    order. Matching trims whitespace and ignores case.

    >>> filter_tables(["T1", "T2", "T3"], include=["t3", "t1"])
    ['T3', 'T1']
    """
    if include:
        filtered = [
            candidate
            for wanted in include
            for candidate in candidates
            if _same_name(candidate, wanted)
        ]
    else:
        filtered = list(candidates)

    if exclude:
        filtered = [
            candidate
            for candidate in filtered
            if not any(_same_name(candidate, unwanted) for unwanted in exclude)
        ]
    return filtered


class TableMappingResolver:
    """
    Resolves source/target table pairings from two dialects.

    Args:
        source_dialect: Dialect of the source data source
        target_dialect: Dialect of the target data source
        transform_lookup: Optional callable returning table transforms for
            (source node group, target node group, source table name)
        source_node_group: Node group passed to ``transform_lookup``
        target_node_group: Node group passed to ``transform_lookup``
    """

    def __init__(
        self,
        source_dialect: Dialect,
        target_dialect: Dialect,
        transform_lookup: TransformLookup | None = None,
        source_node_group: str | None = None,
        target_node_group: str | None = None,
    ):
        self.source_dialect = source_dialect
        self.target_dialect = target_dialect
        self.transform_lookup = transform_lookup
        self.source_node_group = source_node_group
        self.target_node_group = target_node_group

    def resolve_pairings(
        self,
        candidate_table_names: Sequence[str] | None,
        include: Sequence[str] | None = None,
        exclude: Sequence[str] | None = None,
    ) -> list[TablePairing]:
        """
        Resolve pairings for the candidates that survive the filters.

        Passing ``candidate_table_names=None`` selects tables manually: the
        include list itself becomes the candidate list.

        Raises:
            ConfigurationError: in manual mode without any included table
        """
        if candidate_table_names is None:
            if not include:
                raise ConfigurationError(
                    "Included table names must be provided when no candidate "
                    "table list is given"
                )
            candidate_table_names = list(include)

        with trace_operation(
            "resolve_pairings",
            kind=trace.SpanKind.INTERNAL,
            candidate_count=len(candidate_table_names),
        ):
            names = filter_tables(candidate_table_names, include, exclude)
            pairings = []
            for name in names:
                pairing = self.resolve(name)
                if pairing is not None:
                    pairings.append(pairing)

            add_span_attributes(pairing_count=len(pairings))
            logger.info(
                f"Resolved {len(pairings)} table pairings from "
                f"{len(candidate_table_names)} candidates"
            )
            return pairings

    def resolve(self, table_name: str) -> TablePairing | None:
        """Resolve one table name, or return None (with a warning) when it is skipped."""
        catalog, schema, name = split_table_name(table_name)

        source = self.source_dialect.table_metadata(catalog, schema, name)
        if source is None:
            return self._skip("no_source", f"No source table found for table name {table_name}")
        if not source.has_primary_key:
            return self._skip(
                "no_primary_key",
                f"Source table {source} doesn't have any primary key columns "
                f"and will not be considered in the comparison",
            )

        transform = self.find_transform(source)
        if transform is not None:
            target = self.target_dialect.table_metadata(
                transform.target_catalog, transform.target_schema, transform.target_table
            )
        else:
            target = self.target_dialect.table_metadata(None, None, source.name)

        if target is None:
            return self._skip("no_target", f"No target table found for table {table_name}")
        if not target.has_primary_key:
            return self._skip(
                "no_primary_key",
                f"Target table {target} doesn't have any primary key columns "
                f"and will not be considered in the comparison",
            )

        overrides = transform.column_overrides if transform is not None else None
        pairing = TablePairing(
            source=source,
            target=target,
            mapping=self._build_mapping(source, target, overrides),
        )
        try:
            pairing.primary_key_pairs()
        except ValueError as e:
            return self._skip("unmapped_primary_key", f"Skipping {table_name}: {e}")
        try:
            pairing.check_primary_key_order()
        except ValueError as e:
            return self._skip("primary_key_mismatch", f"Skipping {table_name}: {e}")

        logger.debug(f"Paired {source} with {target} ({len(pairing.mapping)} columns)")
        return pairing

    def find_transform(self, source: Table) -> TableTransform | None:
        """First transform for ``source``; used only if it names a target table."""
        if self.transform_lookup is None:
            return None

        transforms = self.transform_lookup(
            self.source_node_group, self.target_node_group, source.name
        )
        if not transforms:
            return None

        # Only a single table transform is supported
        transform = transforms[0]
        if not transform.target_table:
            return None
        return transform

    def _build_mapping(
        self,
        source: Table,
        target: Table,
        overrides: Mapping[str, str] | None,
    ) -> ColumnMapping:
        for source_name, target_name in (overrides or {}).items():
            if source.find_column(source_name) is None or target.find_column(target_name) is None:
                logger.debug(
                    f"Ignoring column override {source_name} -> {target_name} "
                    f"for {source}: column not found"
                )
        return ColumnMapping.by_name(source, target, overrides)

    def _skip(self, reason: str, message: str) -> None:
        logger.warning(message)
        TABLES_SKIPPED.labels(reason=reason).inc()
        return None

