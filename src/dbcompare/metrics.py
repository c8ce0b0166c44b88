"""Prometheus metrics for table comparison."""

from prometheus_client import Counter, Gauge, Histogram

from utils.metrics import get_or_create_metric

ROWS_READ = get_or_create_metric(
    lambda: Counter(
        "dbcompare_rows_read_total",
        "Rows read from ordered cursors",
        ["side"],  # source, target
    ),
    "dbcompare_rows_read_total",
)

ROWS_CLASSIFIED = get_or_create_metric(
    lambda: Counter(
        "dbcompare_rows_classified_total",
        "Rows classified by the merge-join",
        ["table", "outcome"],  # matched, changed, missing, extra
    ),
    "dbcompare_rows_classified_total",
)

STATEMENTS_EMITTED = get_or_create_metric(
    lambda: Counter(
        "dbcompare_statements_emitted_total",
        "Reconciliation statements written to the diff sink",
        ["kind"],  # insert, update, delete
    ),
    "dbcompare_statements_emitted_total",
)

TABLE_COMPARISON_TIME = get_or_create_metric(
    lambda: Histogram(
        "dbcompare_table_comparison_seconds",
        "Time to compare one table pairing",
        ["table"],
        buckets=[0.1, 0.5, 1, 5, 10, 30, 60, 120, 300, 600, 1800, 3600],
    ),
    "dbcompare_table_comparison_seconds",
)

TABLES_SKIPPED = get_or_create_metric(
    lambda: Counter(
        "dbcompare_tables_skipped_total",
        "Candidate tables skipped during pairing resolution",
        ["reason"],
    ),
    "dbcompare_tables_skipped_total",
)

TABLES_PROCESSED = get_or_create_metric(
    lambda: Counter(
        "dbcompare_tables_processed_total",
        "Table comparisons finished",
        ["status"],  # success, failed, cancelled
    ),
    "dbcompare_tables_processed_total",
)

ACTIVE_WORKERS = get_or_create_metric(
    lambda: Gauge(
        "dbcompare_active_workers",
        "Worker threads currently comparing tables",
    ),
    "dbcompare_active_workers",
)

QUEUE_SIZE = get_or_create_metric(
    lambda: Gauge(
        "dbcompare_queue_size",
        "Table pairings waiting to be compared",
    ),
    "dbcompare_queue_size",
)
