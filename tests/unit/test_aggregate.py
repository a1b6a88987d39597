from __future__ import annotations

from datetime import date

import pytest

from kpi_core.aggregate import aggregate, parse_number
from kpi_core.dates import DATE_FORMAT_SLASHES
from kpi_core.projection import RawTable, project


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("10", 10.0),
        ("5,5", 5.5),
        (" 3.25 ", 3.25),
        (7, 7.0),
        (2.5, 2.5),
        ("", 0.0),
        (None, 0.0),
        ("n/a", 0.0),
        ("12 Stk", 12.0),
        ("-4", -4.0),
        (float("nan"), 0.0),
        (True, 0.0),
    ],
)
def test_parse_number(raw, expected):
    assert parse_number(raw) == expected


def _table(name, values, columns=None):
    raw = RawTable.from_values(name, values)
    return project(raw, {name: columns} if columns else {})


def test_rows_with_the_same_date_are_summed():
    table = _table("Content", [["Datum", "A", "B"], ["01.01.2025", "10", "1"], ["01.01.2025", "5,5", ""], ["02.01.2025", "1", "1"]])
    records = aggregate([table])
    assert [r.date for r in records] == [date(2025, 1, 1), date(2025, 1, 2)]
    assert records[0].per_source_sums["Content"] == (15.5, 1.0)


def test_unparseable_dates_are_dropped_not_zero_filled():
    table = _table("Content", [["Datum", "A"], ["", "10"], ["kein Datum", "3"], ["31.02.2025", "4"], ["03.01.2025", "1"]])
    records = aggregate([table])
    assert len(records) == 1
    assert records[0].date == date(2025, 1, 3)


def test_sources_merge_by_date_with_zero_vectors_for_missing_sources():
    content = _table("Content", [["Datum", "A", "B"], ["02.01.2025", "1", "2"]])
    outreach = _table("Outreach", [["Datum", "X"], ["01.01.2025", "7"], ["02.01.2025", "3"]])
    records = aggregate([content, outreach])
    assert [r.date for r in records] == [date(2025, 1, 1), date(2025, 1, 2)]
    assert records[0].per_source_sums == {"Content": (0.0, 0.0), "Outreach": (7.0,)}
    assert records[1].merged(["Content", "Outreach"]) == (1.0, 2.0, 3.0)


def test_output_is_sorted_even_when_rows_are_not():
    table = _table("Content", [["Datum", "A"], ["05.01.2025", "1"], ["01.01.2025", "1"], ["03.01.2025", "1"]])
    assert [r.date.day for r in aggregate([table])] == [1, 3, 5]


def test_date_format_is_chosen_per_source():
    legacy = _table("Legacy", [["Date", "A"], ["01/02/2025", "4"]])
    records = aggregate([legacy], {"Legacy": DATE_FORMAT_SLASHES})
    assert records[0].date == date(2025, 1, 2)


def test_ragged_rows_parse_missing_cells_as_zero():
    table = _table("Content", [["Datum", "A", "B", "C"], ["01.01.2025", "2"]], columns=[0, 1, 2, 3])
    assert aggregate([table])[0].per_source_sums["Content"] == (2.0, 0.0, 0.0)


def test_aggregating_identity_projected_copy_gives_identical_sums():
    values = [["Datum", "A", "B"], ["01.01.2025", "1,25", "x"], ["01.01.2025", "2", "3"], ["09.01.2025", "4", ""]]
    raw = RawTable.from_values("Content", values)
    first = aggregate([project(raw, {})])
    second = aggregate([project(raw, {"Content": [0, 1, 2]})])
    assert first == second


def test_date_only_table_still_yields_records():
    table = _table("Termine", [["Datum"], ["08.01.2025"], ["08.01.2025"]])
    records = aggregate([table])
    assert len(records) == 1
    assert records[0].per_source_sums["Termine"] == ()
