"""Tests for utils/aggregation.py — chart tallies."""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from registration.models import VoterRecord
from utils.aggregation import UNKNOWN, aggregate


def _voter(gender, region, constituency):
    return {"gender": gender, "region": region, "constituency": constituency}


SAMPLE = [
    _voter("female", "Banjul", "Banjul North"),
    _voter("male", "Banjul", "Banjul South"),
    _voter("female", "Banjul", "Banjul North"),
    _voter("male", "Kanifing", "Bakau"),
    _voter("", "Kanifing", "Bakau"),
    _voter("male", "", ""),
]


class TestAggregate:
    def test_banjul_breakdown(self):
        result = aggregate(SAMPLE)
        assert result.constituency["Banjul"] == {"Banjul North": 2, "Banjul South": 1}
        assert result.constituency_series("Banjul") == [
            {"name": "Banjul North", "value": 2},
            {"name": "Banjul South", "value": 1},
        ]

    def test_totals_reconcile(self):
        result = aggregate(SAMPLE)
        assert result.total == len(SAMPLE)
        assert sum(p["value"] for p in result.gender) == result.total
        assert sum(p["value"] for p in result.region) == result.total
        for point in result.region:
            assert sum(result.constituency[point["name"]].values()) == point["value"]

    def test_gender_capitalised_and_unknown_bucket(self):
        result = aggregate(SAMPLE)
        assert result.gender == [
            {"name": "Male", "value": 3},
            {"name": "Female", "value": 2},
            {"name": UNKNOWN, "value": 1},
        ]

    def test_missing_region_goes_to_unknown(self):
        result = aggregate(SAMPLE)
        assert result.constituency[UNKNOWN] == {UNKNOWN: 1}

    def test_ties_sorted_by_name(self):
        result = aggregate([_voter("male", "Kanifing", "x"), _voter("male", "Banjul", "y")])
        assert [p["name"] for p in result.region] == ["Banjul", "Kanifing"]

    def test_empty(self):
        result = aggregate([])
        assert result.to_dict() == {"total": 0, "gender": [], "region": [], "constituency": {}}

    def test_accepts_voter_records(self):
        records = [VoterRecord(gender="female", region="Banjul", constituency="Banjul North")]
        assert aggregate(records).region == [{"name": "Banjul", "value": 1}]

    def test_unknown_region_series_is_empty(self):
        assert aggregate(SAMPLE).constituency_series("Upper River") == []
