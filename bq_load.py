from google.api_core.exceptions import GoogleAPICallError
from google.cloud import bigquery
from google.cloud.bigquery import LoadJobConfig
from loguru import logger

from bq_tables import SCHEMA
from pipeline_errors import InsertionError

INSERT_METHODS = ("stream", "load")


def insert_rows(client, table_id, rows, method="load"):
    """
    Sends all rows to table_id in one request.

    "stream" goes through the streaming insert API, "load" through an
    append load job. Either way a reported error fails the whole call with
    InsertionError even though some rows may already be written; the
    dedup step makes re-running safe.
    """
    if not rows:
        logger.info(f"No rows to insert into {table_id}")
        return 0
    if method == "stream":
        _stream_rows(client, table_id, rows)
    elif method == "load":
        _load_rows(client, table_id, rows)
    else:
        raise ValueError(f"Unknown insert method {method!r}, expected one of {INSERT_METHODS}")

    logger.info(f"Inserted {len(rows)} rows into {table_id}")
    return len(rows)


def _stream_rows(client, table_id, rows):
    errors = client.insert_rows_json(table_id, rows)
    if errors:
        logger.error(f"Insert errors for {table_id}: {errors}")
        raise InsertionError(
            f"BigQuery rejected {len(errors)} of {len(rows)} rows for {table_id}",
            errors=errors,
        )


def _load_rows(client, table_id, rows):
    job_config = LoadJobConfig(
        schema=SCHEMA,
        write_disposition=bigquery.WriteDisposition.WRITE_APPEND,
    )
    logger.info(f"Starting batch load of {len(rows)} rows to {table_id}...")
    load_job = client.load_table_from_json(rows, table_id, job_config=job_config)
    try:
        load_job.result()  # Wait for completion
    except GoogleAPICallError as e:
        errors = load_job.errors or [{"message": str(e)}]
        logger.error(f"Load job for {table_id} failed: {errors}")
        raise InsertionError(f"Load job for {table_id} failed: {e}", errors=errors) from e
    if load_job.errors:
        logger.error(f"Load job errors for {table_id}: {load_job.errors}")
        raise InsertionError(f"Load job for {table_id} reported errors", errors=load_job.errors)
