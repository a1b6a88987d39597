from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

Cell = Union[str, int, float]
RawRow = Sequence[Cell]
ColumnSelection = Dict[str, Sequence[int]]


@dataclass(frozen=True)
class RawTable:
    source_name: str
    header_row: Tuple[Cell, ...] = ()
    data_rows: Tuple[Tuple[Cell, ...], ...] = ()
    source_range: str = ""

    @classmethod
    def from_values(cls, source_name: str, values: Optional[Sequence[RawRow]], source_range: str = "") -> "RawTable":
        rows = [tuple(r) for r in (values or [])]
        if not rows:
            return cls(source_name=source_name, source_range=source_range)
        return cls(source_name=source_name, header_row=rows[0], data_rows=tuple(rows[1:]), source_range=source_range)

    @property
    def rows(self) -> List[Tuple[Cell, ...]]:
        if not self.header_row and not self.data_rows:
            return []
        return [self.header_row, *self.data_rows]


@dataclass(frozen=True)
class ProjectedTable:
    source_name: str
    headers: Tuple[Cell, ...] = ()
    rows: Tuple[Tuple[Cell, ...], ...] = ()
    source_range: str = ""
    column_indices: Tuple[int, ...] = field(default=())


def _pick(row: Sequence[Cell], indices: Sequence[int]) -> Tuple[Cell, ...]:
    out: List[Cell] = []
    for i in indices:
        value = row[i] if 0 <= i < len(row) else ""
        out.append("" if value is None else value)
    return tuple(out)


def project(table: RawTable, selection: ColumnSelection) -> ProjectedTable:
    keep = list(selection.get(table.source_name) or [])
    rows = table.rows
    if keep:
        rows = [_pick(r, keep) for r in rows]
    if not rows:
        return ProjectedTable(source_name=table.source_name, source_range=table.source_range, column_indices=tuple(keep))
    return ProjectedTable(
        source_name=table.source_name,
        headers=tuple(rows[0]),
        rows=tuple(tuple(r) for r in rows[1:]),
        source_range=table.source_range,
        column_indices=tuple(keep),
    )
