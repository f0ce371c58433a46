import re
from dataclasses import asdict, dataclass

from loguru import logger

from ga4_dates import compact_to_iso

# Conversion events that get their own column. Anything else is dropped.
TRACKED_EVENTS = ("cv_prospect_all", "cv_seminar_all", "cv_contract_all")

KEY_LENGTH = 5  # four session dimensions plus date
DATE_INDEX = 4
EVENT_INDEX = 5

COMPACT_DATE = re.compile(r"^\d{8}$")


@dataclass
class AggregatedRecord:
    date: str
    session_source_medium: str
    session_manual_campaign_name: str
    session_manual_term: str
    session_google_ads_query: str
    cv_prospect_all: int = 0
    cv_seminar_all: int = 0
    cv_contract_all: int = 0

    @property
    def natural_key(self):
        return (
            self.date,
            self.session_source_medium,
            self.session_manual_campaign_name,
            self.session_manual_term,
            self.session_google_ads_query,
        )

    def to_row(self, fetched_at):
        row = asdict(self)
        row["fetched_at"] = fetched_at
        return row


def natural_key(raw_row):
    return tuple(raw_row.dimensions[:KEY_LENGTH])


def parse_count(value):
    return int(value or 0)


def aggregate(rows):
    """
    Folds event level rows into one record per natural key.

    Counters start at zero and a tracked event sets (does not add to) its
    column, so a duplicated key+event upstream keeps the last value seen.
    Records come back in the order their key was first seen. Rows without
    a YYYYMMDD date, such as the (other) roll-up row, are skipped.
    """
    records = {}
    skipped = 0
    for row in rows:
        if not COMPACT_DATE.match(row.dimensions[DATE_INDEX]):
            skipped += 1
            continue
        key = natural_key(row)
        record = records.get(key)
        if record is None:
            dims = row.dimensions
            record = AggregatedRecord(
                date=compact_to_iso(dims[DATE_INDEX]),
                session_source_medium=dims[0],
                session_manual_campaign_name=dims[1],
                session_manual_term=dims[2],
                session_google_ads_query=dims[3],
            )
            records[key] = record

        event_name = row.dimensions[EVENT_INDEX]
        if event_name in TRACKED_EVENTS:
            setattr(record, event_name, parse_count(row.metrics[0]))
    if skipped:
        logger.warning(f"Skipped {skipped} row(s) without a YYYYMMDD date, e.g. the (other) row")
    return list(records.values())


def to_output_rows(records, fetched_at):
    return [record.to_row(fetched_at) for record in records]
