from contextlib import contextmanager

from google.api_core.exceptions import NotFound
from google.cloud import bigquery
from loguru import logger

# Table schema must match AggregatedRecord.to_row
SCHEMA = [
    bigquery.SchemaField("date", "DATE", mode="REQUIRED"),
    bigquery.SchemaField("session_source_medium", "STRING", mode="NULLABLE"),
    bigquery.SchemaField("session_manual_campaign_name", "STRING", mode="NULLABLE"),
    bigquery.SchemaField("session_manual_term", "STRING", mode="NULLABLE"),
    bigquery.SchemaField("session_google_ads_query", "STRING", mode="NULLABLE"),
    bigquery.SchemaField("cv_prospect_all", "INTEGER", mode="NULLABLE"),
    bigquery.SchemaField("cv_seminar_all", "INTEGER", mode="NULLABLE"),
    bigquery.SchemaField("cv_contract_all", "INTEGER", mode="NULLABLE"),
    bigquery.SchemaField("fetched_at", "TIMESTAMP", mode="REQUIRED"),
]

PARTITION_FIELD = "date"
KEY_COLUMNS = [
    "date",
    "session_source_medium",
    "session_manual_campaign_name",
    "session_manual_term",
    "session_google_ads_query",
]


def full_table_id(project_id, dataset_id, table_id):
    return f"{project_id}.{dataset_id}.{table_id}"


def table_exists(client, table_id) -> bool:
    try:
        client.get_table(table_id)
    except NotFound:
        return False
    return True


def ensure_table(client, table_id, partitioned=True) -> bool:
    """Creates the table with SCHEMA unless it already exists. Returns True if created."""
    if table_exists(client, table_id):
        logger.info(f"Table exists: {table_id}")
        return False

    table = bigquery.Table(table_id, schema=SCHEMA)
    if partitioned:
        table.time_partitioning = bigquery.TimePartitioning(
            type_=bigquery.TimePartitioningType.DAY,
            field=PARTITION_FIELD,
        )
    client.create_table(table)
    logger.info(f"Table created: {table_id}")
    return True


def drop_table(client, table_id):
    client.delete_table(table_id, not_found_ok=True)
    logger.info(f"Dropped table (if it existed): {table_id}")


@contextmanager
def staging_table(client, table_id):
    """A freshly created staging table that is always dropped afterwards."""
    drop_table(client, table_id)
    ensure_table(client, table_id, partitioned=False)
    try:
        yield table_id
    finally:
        drop_table(client, table_id)
