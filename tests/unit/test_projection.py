from __future__ import annotations

from kpi_core.projection import ProjectedTable, RawTable, project


def test_project_selects_columns_for_header_and_rows():
    table = RawTable.from_values("Outreach", [["d", "a", "b", "c"], ["01.01.2025", 1, 2, 3]])
    out = project(table, {"Outreach": [0, 3]})
    assert out.headers == ("d", "c")
    assert out.rows == (("01.01.2025", 3),)


def test_source_without_selection_passes_through():
    values = [["d", "a"], ["01.01.2025", "1", "extra"]]
    out = project(RawTable.from_values("Other", values), {"Outreach": [0]})
    assert out.headers == ("d", "a")
    assert out.rows == (("01.01.2025", "1", "extra"),)


def test_ragged_rows_fill_missing_cells_with_empty_string():
    table = RawTable.from_values("Content", [["d", "a", "b"], ["01.01.2025"], ["02.01.2025", "4", None]])
    out = project(table, {"Content": [0, 1, 2, 9]})
    assert out.headers == ("d", "a", "b", "")
    assert out.rows == (("01.01.2025", "", "", ""), ("02.01.2025", "4", "", ""))
    assert all(len(r) == len(out.headers) for r in out.rows)


def test_empty_table_projects_to_empty():
    out = project(RawTable.from_values("Content", []), {"Content": [0, 1]})
    assert isinstance(out, ProjectedTable)
    assert out.headers == ()
    assert out.rows == ()


def test_header_only_table_has_no_rows():
    out = project(RawTable.from_values("Content", [["d", "a"]]), {"Content": [1]})
    assert out.headers == ("a",)
    assert out.rows == ()
