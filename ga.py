import sys
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import List

from google.analytics.data_v1beta import BetaAnalyticsDataClient
from google.cloud import bigquery
from google.oauth2 import service_account
from loguru import logger

from bq_dedup import delete_duplicates, merge_staging
from bq_load import insert_rows
from bq_tables import ensure_table, staging_table
from ga4_aggregate import aggregate, to_output_rows
from ga4_dates import recent_span
from ga4_fetch import fetch_daily, fetch_report
from pipeline_config import configure_logging, load_config
from pipeline_errors import ConfigurationError, FetchError, InsertionError, MergeError


@dataclass
class RunSummary:
    start_date: date
    end_date: date
    fetched_rows: int = 0
    inserted_rows: int = 0
    failed_dates: List[date] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    deduplicated: bool = False

    @property
    def complete(self):
        return not self.failed_dates


def build_clients(config):
    if config.credentials_path:
        credentials = service_account.Credentials.from_service_account_file(config.credentials_path)
        return (
            BetaAnalyticsDataClient(credentials=credentials),
            bigquery.Client(project=config.project_id, credentials=credentials),
        )
    return BetaAnalyticsDataClient(), bigquery.Client(project=config.project_id)


def fetch_rows(analytics_client, config, summary):
    span = config.span
    if config.fetch_mode == "daily":
        result = fetch_daily(analytics_client, config.property_id, span, limit=config.page_size)
        summary.failed_dates.extend(result.failed_dates)
        summary.warnings.extend(result.warnings)
        return result.rows

    try:
        result = fetch_report(
            analytics_client, config.property_id, span.start, span.end, limit=config.page_size
        )
    except FetchError as e:
        logger.error(f"Error running report: {e}")
        summary.failed_dates.extend(span)
        return []
    summary.warnings.extend(result.warnings)
    return result.rows


def load_and_deduplicate(bq_client, config, rows):
    if config.dedup_strategy == "merge":
        # Streaming into a table recreated under the same name can drop rows
        # silently, so staging is always filled by a load job.
        with staging_table(bq_client, config.staging_destination) as staging_id:
            inserted = insert_rows(bq_client, staging_id, rows, method="load")
            merge_staging(bq_client, config.destination, staging_id)
        return inserted

    ensure_table(bq_client, config.destination)
    inserted = insert_rows(bq_client, config.destination, rows, method=config.insert_method)
    delete_duplicates(bq_client, config.destination)
    return inserted


def log_missing_dates(summary):
    missing = ", ".join(day.isoformat() for day in summary.failed_dates)
    logger.warning(f"Run finished with missing dates: {missing}")


def run(config, analytics_client=None, bq_client=None) -> RunSummary:
    """
    Fetches the configured date range from GA4, folds the conversion events
    into one row per session dimension combination and date, and loads the
    result into BigQuery keeping only the latest fetch per row.

    Dates whose report failed are listed in RunSummary.failed_dates.
    Insertion and merge failures are logged and re-raised.
    """
    span = config.span
    summary = RunSummary(start_date=span.start, end_date=span.end)
    logger.info(
        f"GA4 property {config.property_id}: fetching {span.start} to {span.end} "
        f"({len(span)} days, {config.fetch_mode} mode) into {config.destination}"
    )

    if analytics_client is None or bq_client is None:
        default_analytics, default_bq = build_clients(config)
        analytics_client = analytics_client or default_analytics
        bq_client = bq_client or default_bq

    rows = fetch_rows(analytics_client, config, summary)
    summary.fetched_rows = len(rows)

    records = aggregate(rows)
    if not records:
        if summary.failed_dates:
            log_missing_dates(summary)
        else:
            logger.info("No data returned from the report.")
        return summary

    fetched_at = datetime.now(timezone.utc).isoformat()
    output_rows = to_output_rows(records, fetched_at)
    logger.info(f"Aggregated {len(rows)} event rows into {len(output_rows)} rows")

    try:
        summary.inserted_rows = load_and_deduplicate(bq_client, config, output_rows)
    except (InsertionError, MergeError) as e:
        logger.error(f"Run aborted: {e}")
        raise
    summary.deduplicated = True

    if summary.failed_dates:
        log_missing_dates(summary)
    else:
        logger.info(f"BigQuery update complete: {summary.inserted_rows} rows for {span.start} to {span.end}")
    return summary


def run_recent(config, days=7, today=None, analytics_client=None, bq_client=None) -> RunSummary:
    """Same as run() for the `days` full days before today (default: last 7 days)."""
    span = recent_span(days, today=today)
    recent = config.model_copy(update={"start_date": span.start, "end_date": span.end})
    return run(recent, analytics_client=analytics_client, bq_client=bq_client)


def main():
    configure_logging()
    try:
        config = load_config()
    except ConfigurationError as e:
        logger.error(str(e))
        return 1
    configure_logging(config.log_level)
    summary = run(config)
    return 0 if summary.complete else 1


if __name__ == "__main__":
    sys.exit(main())
