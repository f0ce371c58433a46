from dataclasses import dataclass, field
from typing import List, NamedTuple, Tuple

from google.analytics.data_v1beta.types import (
    DateRange,
    Dimension,
    Metric,
    RunReportRequest,
)
from google.api_core.exceptions import GoogleAPICallError
from loguru import logger

from pipeline_errors import FetchError

# --- Report definition ---
# The trailing eventName dimension is folded into counter columns by the
# aggregator; everything before it (date included) is the natural key.
DIMENSIONS = [
    "sessionSourceMedium",
    "sessionManualCampaignName",
    "sessionManualTerm",
    "sessionGoogleAdsQuery",
    "date",
    "eventName",
]
METRICS = ["eventCount"]

# GA4 Data API accepts at most 250000 rows per page
MAX_PAGE_SIZE = 250000
DEFAULT_PAGE_SIZE = 100000


class RawRow(NamedTuple):
    dimensions: Tuple[str, ...]
    metrics: Tuple[str, ...]


@dataclass
class FetchResult:
    rows: List[RawRow] = field(default_factory=list)
    row_count: int = 0
    pages: int = 0
    warnings: List[str] = field(default_factory=list)


@dataclass
class DailyFetchResult:
    rows: List[RawRow] = field(default_factory=list)
    fetched_dates: list = field(default_factory=list)
    failed_dates: list = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def build_request(property_id, start_date, end_date, limit=DEFAULT_PAGE_SIZE, offset=0):
    return RunReportRequest(
        property=f"properties/{property_id}",
        dimensions=[Dimension(name=name) for name in DIMENSIONS],
        metrics=[Metric(name=name) for name in METRICS],
        date_ranges=[DateRange(start_date=start_date.isoformat(), end_date=end_date.isoformat())],
        limit=limit,
        offset=offset,
    )


def describe_data_quality(metadata):
    """Human readable notes for anything in the response metadata that makes
    the numbers incomplete: sampling, thresholding, (other) row roll-up."""
    notes = []
    if metadata is None:
        return notes
    for sampling in getattr(metadata, "sampling_metadatas", None) or []:
        notes.append(
            f"Report is sampled: {sampling.samples_read_count} of "
            f"{sampling.sampling_space_size} events read"
        )
    if getattr(metadata, "subject_to_thresholding", False):
        notes.append("Report is subject to thresholding; low counts may be withheld")
    if getattr(metadata, "data_loss_from_other_row", False):
        notes.append("Some rows were rolled up into the (other) row")
    return notes


def fetch_report(client, property_id, start_date, end_date, limit=DEFAULT_PAGE_SIZE) -> FetchResult:
    """
    Runs the report for [start_date, end_date] page by page and returns every
    row in arrival order.

    Paging stops on an empty page, a page shorter than `limit`, or once the
    offset reaches the row_count the API reported. Zero rows is a normal
    result. API failures are raised as FetchError.
    """
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}, got {limit}")

    result = FetchResult()
    offset = 0
    while True:
        request = build_request(property_id, start_date, end_date, limit=limit, offset=offset)
        try:
            response = client.run_report(request)
        except GoogleAPICallError as e:
            raise FetchError(
                f"GA4 report for {start_date} to {end_date} failed at offset {offset}: {e}",
                start_date=start_date,
                end_date=end_date,
            ) from e
        result.pages += 1

        page = [
            RawRow(
                dimensions=tuple(value.value for value in row.dimension_values),
                metrics=tuple(value.value for value in row.metric_values),
            )
            for row in response.rows
        ]
        result.rows.extend(page)
        result.row_count = getattr(response, "row_count", 0) or result.row_count

        for note in describe_data_quality(getattr(response, "metadata", None)):
            if note not in result.warnings:
                logger.warning(f"{start_date} to {end_date}: {note}")
                result.warnings.append(note)

        offset += limit
        if len(page) < limit:
            break
        if result.row_count and offset >= result.row_count:
            break

    logger.info(
        f"Fetched {len(result.rows)} rows for {start_date} to {end_date} in {result.pages} page(s)"
    )
    return result


def fetch_daily(client, property_id, span, limit=DEFAULT_PAGE_SIZE) -> DailyFetchResult:
    """One report per date, in order. A failed date is logged and skipped."""
    result = DailyFetchResult()
    for day in span:
        try:
            fetched = fetch_report(client, property_id, day, day, limit=limit)
        except FetchError as e:
            logger.error(f"Skipping {day.isoformat()}: {e}")
            result.failed_dates.append(day)
            continue
        result.rows.extend(fetched.rows)
        result.fetched_dates.append(day)
        result.warnings.extend(f"{day.isoformat()}: {note}" for note in fetched.warnings)
    return result
