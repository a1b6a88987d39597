from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple


class ColumnKind(str, enum.Enum):
    BASE = "base"
    PART_J = "part_j"
    PART_A = "part_a"


# Single-letter markers that tag a column as a per-person share of a base metric.
PART_MARKERS: Dict[str, ColumnKind] = {
    "J": ColumnKind.PART_J,
    "A": ColumnKind.PART_A,
}
PART_SEPARATORS: Tuple[str, ...] = ("_", " ", "-")


@dataclass(frozen=True)
class ColumnInfo:
    label: str
    name: str
    kind: ColumnKind
    remainder: str
    base: Optional[str] = None

    @property
    def is_part(self) -> bool:
        return self.kind is not ColumnKind.BASE

    def as_dict(self) -> Dict[str, Optional[str]]:
        return {"label": self.label, "kind": self.kind.value, "base": self.base}


def strip_source_prefix(label: str) -> str:
    """'Content:Comments' -> 'Comments'."""
    label = str(label)
    _, colon, rest = label.partition(":")
    return (rest if colon else label).strip()


def split_part(name: str) -> Tuple[ColumnKind, str]:
    """Classify a stripped label and return the remainder without its marker."""
    name = name.strip()
    upper = name.upper()
    for marker, kind in PART_MARKERS.items():
        if upper == marker:
            return kind, ""
        if upper.startswith(marker) and len(name) > 1 and name[1] in PART_SEPARATORS:
            return kind, name[2:].strip(" _-")
        if upper.endswith(f"({marker})"):
            return kind, name[: -len(marker) - 2].strip(" _-")
        if len(name) > 2 and upper.endswith(marker) and name[-2] in PART_SEPARATORS:
            return kind, name[:-2].strip(" _-")
    return ColumnKind.BASE, name


def column_kind(label: str) -> ColumnKind:
    return split_part(strip_source_prefix(label))[0]


def resolve_base(
    remainder: str,
    base_names: Sequence[str],
    aliases: Optional[Mapping[str, Sequence[str]]] = None,
) -> Optional[str]:
    """Find the base metric a part column belongs to.

    Phase one tries the remainder itself and then its aliases, matching base
    names exactly (case-insensitive). Phase two scans base names in order for a
    substring match either way round.
    """
    needle = remainder.strip().lower()
    if not needle:
        return None
    by_lower = {}
    for name in base_names:
        by_lower.setdefault(name.lower(), name)

    candidates = [remainder]
    for key, values in (aliases or {}).items():
        if key.lower() == needle:
            candidates.extend(values)
    for candidate in candidates:
        hit = by_lower.get(candidate.strip().lower())
        if hit is not None:
            return hit

    for name in base_names:
        lowered = name.lower()
        if needle in lowered or lowered in needle:
            return name
    return None


def describe_columns(
    labels: Sequence[str],
    aliases: Optional[Mapping[str, Sequence[str]]] = None,
) -> List[ColumnInfo]:
    """Decide Base/PartJ/PartA once per header, resolving parts to a base label."""
    staged = []
    for label in labels:
        name = strip_source_prefix(label)
        kind, remainder = split_part(name)
        staged.append((label, name, kind, remainder))

    base_labels: Dict[str, str] = {}
    for label, name, kind, _ in staged:
        if kind is ColumnKind.BASE:
            base_labels.setdefault(name, str(label))
    base_names = list(base_labels)
    out: List[ColumnInfo] = []
    for label, name, kind, remainder in staged:
        base = None
        if kind is not ColumnKind.BASE:
            resolved = resolve_base(remainder, base_names, aliases)
            base = base_labels.get(resolved) if resolved is not None else None
        out.append(ColumnInfo(label=str(label), name=name, kind=kind, remainder=remainder, base=base))
    return out
