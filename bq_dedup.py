"""
Keeps one row per natural key (date + session dimensions) in the main table,
the one with the latest fetched_at.

Two ways to get there:

* delete_duplicates: rows go straight into the main table, then one DELETE
  removes every row that has a newer twin.
* merge_staging: rows go into a staging table, then the main table is
  rewritten as main UNION ALL staging keeping rank 1 per key. This is a
  full table rewrite and assumes nobody else writes the table meanwhile.
"""
from google.api_core.exceptions import GoogleAPICallError
from loguru import logger

from bq_tables import KEY_COLUMNS, PARTITION_FIELD, SCHEMA, table_exists
from pipeline_errors import MergeError

# Legacy type names from SchemaField -> standard SQL DDL types
DDL_TYPES = {
    "INTEGER": "INT64",
    "FLOAT": "FLOAT64",
    "BOOLEAN": "BOOL",
}

RANK_COLUMN = "fetch_rank"


def column_definitions(schema=SCHEMA):
    definitions = []
    for field in schema:
        sql_type = DDL_TYPES.get(field.field_type, field.field_type)
        not_null = " NOT NULL" if field.mode == "REQUIRED" else ""
        definitions.append(f"{field.name} {sql_type}{not_null}")
    return ",\n  ".join(definitions)


def column_list(schema=SCHEMA):
    return ", ".join(field.name for field in schema)


def delete_duplicates_sql(table_id):
    # IS NOT DISTINCT FROM so rows with NULL dimensions still match
    key_match = "\n    AND ".join(
        f"newer.{column} IS NOT DISTINCT FROM target.{column}" for column in KEY_COLUMNS
    )
    return f"""
DELETE FROM `{table_id}` AS target
WHERE EXISTS (
  SELECT 1
  FROM `{table_id}` AS newer
  WHERE {key_match}
    AND newer.fetched_at > target.fetched_at
)
"""


def latest_rows_sql(source_sql):
    columns = column_list()
    partition = ", ".join(KEY_COLUMNS)
    return f"""
SELECT {columns}
FROM (
  SELECT {columns},
    ROW_NUMBER() OVER (PARTITION BY {partition} ORDER BY fetched_at DESC) AS {RANK_COLUMN}
  FROM ({source_sql})
)
WHERE {RANK_COLUMN} = 1
"""


def merge_source_sql(table_id, staging_id, main_exists=True):
    columns = column_list()
    if not main_exists:
        return f"SELECT {columns} FROM `{staging_id}`"
    return (
        f"SELECT {columns} FROM `{table_id}`\n"
        f"    UNION ALL\n"
        f"    SELECT {columns} FROM `{staging_id}`"
    )


def merge_sql(table_id, staging_id, main_exists=True):
    create = "CREATE OR REPLACE TABLE" if main_exists else "CREATE TABLE"
    return f"""
{create} `{table_id}` (
  {column_definitions()}
)
PARTITION BY {PARTITION_FIELD}
AS
{latest_rows_sql(merge_source_sql(table_id, staging_id, main_exists))}
"""


def run_query(client, sql, description):
    logger.debug(f"Executing {description}:\n{sql}")
    try:
        job = client.query(sql)
        job.result()
    except GoogleAPICallError as e:
        logger.error(f"{description} failed: {e}")
        raise MergeError(f"{description} failed: {e}") from e
    logger.info(f"{description} finished (BigQuery job {job.job_id})")
    return job


def delete_duplicates(client, table_id):
    job = run_query(client, delete_duplicates_sql(table_id), f"Deduplication of {table_id}")
    deleted = getattr(job, "num_dml_affected_rows", None) or 0
    logger.info(f"Removed {deleted} superseded rows from {table_id}")
    return deleted


def merge_staging(client, table_id, staging_id):
    """Folds staging_id into table_id. Returns True if the main table already existed."""
    main_exists = table_exists(client, table_id)
    if not main_exists:
        logger.info(f"{table_id} does not exist yet, creating it from {staging_id}")
    run_query(
        client,
        merge_sql(table_id, staging_id, main_exists=main_exists),
        f"Merge of {staging_id} into {table_id}",
    )
    return main_exists
