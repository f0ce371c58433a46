from ga4_aggregate import AggregatedRecord, aggregate, to_output_rows
from ga4_fetch import RawRow


def raw(event, count, day="20250101", term="c", query="d"):
    return RawRow(dimensions=("a", "b", term, query, day, event), metrics=(str(count),))


def test_events_fold_into_one_record():
    rows = [raw("cv_prospect_all", 5), raw("cv_seminar_all", 2)]

    assert aggregate(rows) == [
        AggregatedRecord(
            date="2025-01-01",
            session_source_medium="a",
            session_manual_campaign_name="b",
            session_manual_term="c",
            session_google_ads_query="d",
            cv_prospect_all=5,
            cv_seminar_all=2,
            cv_contract_all=0,
        )
    ]


def test_unrecognised_events_contribute_nothing():
    rows = [raw("page_view", 120), raw("cv_contract_all", 1), raw("session_start", 40)]

    [record] = aggregate(rows)

    assert (record.cv_prospect_all, record.cv_seminar_all, record.cv_contract_all) == (0, 0, 1)


def test_key_with_only_untracked_events_still_gets_a_zero_record():
    [record] = aggregate([raw("page_view", 120)])

    assert (record.cv_prospect_all, record.cv_seminar_all, record.cv_contract_all) == (0, 0, 0)


def test_duplicate_event_for_same_key_is_last_write_wins():
    [record] = aggregate([raw("cv_prospect_all", 5), raw("cv_prospect_all", 3)])

    assert record.cv_prospect_all == 3


def test_empty_metric_counts_as_zero():
    [record] = aggregate([raw("cv_seminar_all", "")])

    assert record.cv_seminar_all == 0


def test_keys_include_date_and_keep_first_seen_order():
    rows = [
        raw("cv_prospect_all", 1, day="20250102"),
        raw("cv_prospect_all", 2, day="20250101"),
        raw("cv_prospect_all", 3, day="20250102", term="other"),
        raw("cv_seminar_all", 4, day="20250101"),
    ]

    records = aggregate(rows)

    assert [r.natural_key for r in records] == [
        ("2025-01-02", "a", "b", "c", "d"),
        ("2025-01-01", "a", "b", "c", "d"),
        ("2025-01-02", "a", "b", "other", "d"),
    ]
    assert records[1].cv_seminar_all == 4


def test_aggregation_is_repeatable():
    rows = [
        raw("cv_prospect_all", 1),
        raw("cv_contract_all", 9, term="x"),
        raw("cv_seminar_all", 2),
        raw("scroll", 8, day="20250103"),
    ]

    assert aggregate(rows) == aggregate(rows)
    assert aggregate(list(rows)) == aggregate(iter(rows))


def test_output_rows_match_table_columns(fetched_at):
    [row] = to_output_rows(aggregate([raw("cv_prospect_all", 5)]), fetched_at)

    assert row == {
        "date": "2025-01-01",
        "session_source_medium": "a",
        "session_manual_campaign_name": "b",
        "session_manual_term": "c",
        "session_google_ads_query": "d",
        "cv_prospect_all": 5,
        "cv_seminar_all": 0,
        "cv_contract_all": 0,
        "fetched_at": fetched_at,
    }


def test_other_row_without_a_date_is_skipped(log_messages):
    rows = [
        raw("cv_prospect_all", 5),
        RawRow(dimensions=("(other)",) * 6, metrics=("7",)),
    ]

    records = aggregate(rows)

    assert [r.natural_key for r in records] == [("2025-01-01", "a", "b", "c", "d")]
    assert records[0].cv_prospect_all == 5
    assert any("Skipped 1 row(s) without a YYYYMMDD date" in message for message in log_messages)


def test_only_other_rows_aggregate_to_nothing():
    assert aggregate([RawRow(dimensions=("(other)",) * 6, metrics=("7",))]) == []
