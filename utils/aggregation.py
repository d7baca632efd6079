"""Aggregation Engine: chart tallies over the voter record set.

One pass over the records fills three counters (gender, region, and
region -> constituency). Output lists are sorted by descending count, then
name, so identical input always yields identical output.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Any, Iterable

from utils.filters import field_value

UNKNOWN = "Unknown"


def _bucket(value: str) -> str:
    value = value.strip()
    return value if value else UNKNOWN


def _as_series(counter: Counter) -> list[dict[str, Any]]:
    return [
        {"name": name, "value": count}
        for name, count in sorted(counter.items(), key=lambda kv: (-kv[1], kv[0]))
    ]


@dataclass
class ChartAggregate:
    total: int = 0
    gender: list[dict[str, Any]] = field(default_factory=list)
    region: list[dict[str, Any]] = field(default_factory=list)
    constituency: dict[str, dict[str, int]] = field(default_factory=dict)

    def constituency_series(self, region: str) -> list[dict[str, Any]]:
        return _as_series(Counter(self.constituency.get(region, {})))

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "gender": self.gender,
            "region": self.region,
            "constituency": self.constituency,
        }


def aggregate(records: Iterable[Any]) -> ChartAggregate:
    """Tally gender, region, and per-region constituency counts."""
    genders: Counter = Counter()
    regions: Counter = Counter()
    constituencies: dict[str, Counter] = defaultdict(Counter)
    total = 0
    for record in records:
        total += 1
        gender = _bucket(field_value(record, "gender"))
        genders[gender.capitalize() if gender != UNKNOWN else gender] += 1
        region = _bucket(field_value(record, "region"))
        regions[region] += 1
        constituencies[region][_bucket(field_value(record, "constituency"))] += 1

    return ChartAggregate(
        total=total,
        gender=_as_series(genders),
        region=_as_series(regions),
        constituency={
            region: dict(sorted(counts.items()))
            for region, counts in sorted(constituencies.items())
        },
    )
