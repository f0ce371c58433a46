"""
In-memory stand-ins for BetaAnalyticsDataClient and bigquery.Client.

They only implement the calls the loader makes and record every call so
tests can assert on requests, inserted rows and executed SQL.
"""
from datetime import datetime
from types import SimpleNamespace

import pytest
from google.api_core.exceptions import NotFound, ServiceUnavailable
from loguru import logger

from pipeline_config import load_config


def ga4_row(dimensions, metric):
    return SimpleNamespace(
        dimension_values=[SimpleNamespace(value=value) for value in dimensions],
        metric_values=[SimpleNamespace(value=str(metric))],
    )


def clean_metadata():
    return SimpleNamespace(
        sampling_metadatas=[],
        subject_to_thresholding=False,
        data_loss_from_other_row=False,
    )


class FakeAnalyticsClient:
    def __init__(self, rows=(), failing_dates=(), report_row_count=True, metadata=None):
        # rows: (dimensions, metric) pairs; dimensions[4] is the YYYYMMDD date
        self.rows = list(rows)
        self.failing_dates = set(failing_dates)
        self.report_row_count = report_row_count
        self.metadata = metadata or clean_metadata()
        self.requests = []

    def run_report(self, request):
        self.requests.append(request)
        start = request.date_ranges[0].start_date
        end = request.date_ranges[0].end_date
        if start in self.failing_dates:
            raise ServiceUnavailable(f"backend unavailable for {start}")

        start_compact = start.replace("-", "")
        end_compact = end.replace("-", "")
        matching = [
            (dims, metric) for dims, metric in self.rows
            if not dims[4].isdigit() or start_compact <= dims[4] <= end_compact
        ]
        page = matching[request.offset:request.offset + request.limit]
        return SimpleNamespace(
            rows=[ga4_row(dims, metric) for dims, metric in page],
            row_count=len(matching) if self.report_row_count else 0,
            metadata=self.metadata,
        )


class FakeJob:
    def __init__(self, job_id, error=None, errors=None, affected_rows=0):
        self.job_id = job_id
        self.error = error
        self.errors = errors
        self.num_dml_affected_rows = affected_rows

    def result(self):
        if self.error is not None:
            raise self.error
        return self


class FakeBigQueryClient:
    def __init__(self, existing_tables=(), insert_errors=None, query_error=None, load_error=None):
        self.tables = {table_id: None for table_id in existing_tables}
        self.insert_errors = insert_errors or []
        self.query_error = query_error
        self.load_error = load_error
        self.inserted = {}
        self.queries = []
        self.calls = []

    def _job_id(self):
        return f"job_{len(self.calls)}"

    def get_table(self, table_id):
        self.calls.append(("get_table", table_id))
        if table_id not in self.tables:
            raise NotFound(f"Not found: Table {table_id}")
        return self.tables[table_id]

    def create_table(self, table):
        table_id = f"{table.project}.{table.dataset_id}.{table.table_id}"
        self.calls.append(("create_table", table_id))
        self.tables[table_id] = table
        return table

    def delete_table(self, table_id, not_found_ok=False):
        self.calls.append(("delete_table", table_id))
        if table_id not in self.tables and not not_found_ok:
            raise NotFound(f"Not found: Table {table_id}")
        self.tables.pop(table_id, None)

    def insert_rows_json(self, table_id, rows):
        self.calls.append(("insert_rows_json", table_id))
        self.inserted.setdefault(table_id, []).extend(rows)
        return self.insert_errors

    def load_table_from_json(self, rows, table_id, job_config=None):
        self.calls.append(("load_table_from_json", table_id))
        if self.load_error is None:
            self.inserted.setdefault(table_id, []).extend(rows)
        return FakeJob(self._job_id(), error=self.load_error)

    def query(self, sql):
        self.calls.append(("query", sql))
        self.queries.append(sql)
        return FakeJob(self._job_id(), error=self.query_error, affected_rows=3)


@pytest.fixture
def config():
    return load_config(
        property_id="331542258",
        project_id="analytics-prj",
        dataset_id="ga4_export",
        table_id="google_ads_query",
        start_date="2025-01-01",
        end_date="2025-01-03",
    )


@pytest.fixture
def log_messages():
    messages = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def fetched_at():
    return datetime(2025, 1, 4, 9, 30).isoformat() + "+00:00"
