"""
Tests for utils/filters.py — filter, first-come-first-served ordering,
pagination, and the pager window.
"""
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import utils.filters as filters_mod
from utils.filters import (
    FilterState,
    TableView,
    apply_filters,
    clamp_page,
    page_window,
    paginate,
    sort_first_come_first_served,
)

RECORDS = [
    {"id": "1", "full_name": "Awa Jallow", "organization": "Youth Council",
     "date_of_birth": "2001-04-12", "gender": "female", "region": "Banjul",
     "constituency": "Banjul North", "identification_type": "passport_number",
     "identification_number": "1000001", "created_at": "2024-01-01T08:03:00+00:00"},
    {"id": "2", "full_name": "Lamin Ceesay", "organization": "Scouts",
     "date_of_birth": "1999-11-02", "gender": "male", "region": "Banjul",
     "constituency": "Banjul South", "identification_type": "birth_certificate",
     "identification_number": "2000002", "created_at": "2024-01-01T08:01:00+00:00"},
    {"id": "3", "full_name": "Fatou Bah", "organization": "Youth Council",
     "date_of_birth": "2001-04-30", "gender": "Female", "region": "Kanifing",
     "constituency": "Bakau", "identification_type": "passport_number",
     "identification_number": "1000003", "created_at": "2024-01-01T08:02:00+00:00"},
    {"id": "4", "full_name": "Musa Sowe", "organization": None,
     "date_of_birth": "1995-06-15", "gender": "male", "region": "Kanifing",
     "constituency": "Serekunda", "identification_type": "identification_document",
     "identification_number": "3000004", "created_at": None},
]


def _ids(rows):
    return [r["id"] for r in rows]


class TestApplyFilters:
    def test_empty_state_returns_everything(self):
        assert _ids(apply_filters(RECORDS, FilterState())) == ["1", "2", "3", "4"]

    def test_name_is_case_insensitive_substring(self):
        assert _ids(apply_filters(RECORDS, FilterState(full_name="JALL"))) == ["1"]

    def test_gender_is_exact_match(self):
        # "male" must not match "female"
        assert _ids(apply_filters(RECORDS, FilterState(gender="male"))) == ["2", "4"]
        assert _ids(apply_filters(RECORDS, FilterState(gender="female"))) == ["1"]

    @pytest.mark.parametrize("needle", ["Male", "MALE", "FEMALE"])
    def test_gender_is_case_sensitive(self, needle):
        rows = [{"id": "1", "gender": "male"}, {"id": "2", "gender": "female"}]
        assert apply_filters(rows, FilterState(gender=needle)) == []

    def test_date_of_birth_partial(self):
        assert _ids(apply_filters(RECORDS, FilterState(date_of_birth="2001-04"))) == ["1", "3"]

    def test_missing_field_never_matches(self):
        assert _ids(apply_filters(RECORDS, FilterState(organization="o"))) == ["1", "2", "3"]

    def test_filters_combine_with_and(self):
        state = FilterState(region="banjul", identification_type="passport")
        assert _ids(apply_filters(RECORDS, state)) == ["1"]

    def test_adding_a_filter_never_grows_the_result(self):
        state = FilterState()
        previous = len(apply_filters(RECORDS, state))
        for name, value in [("region", "Kan"), ("gender", "male"), ("full_name", "musa")]:
            setattr(state, name, value)
            current = len(apply_filters(RECORDS, state))
            assert current <= previous
            previous = current

    def test_stops_evaluating_once_empty(self, monkeypatch):
        calls = []

        def spy(name):
            def match(value, needle):
                calls.append(name)
                return False
            return match

        monkeypatch.setattr(filters_mod, "_PREDICATES",
                            [("full_name", spy("full_name")), ("region", spy("region"))])
        result = apply_filters(RECORDS, FilterState(full_name="x", region="y"))
        assert result == []
        assert "region" not in calls

    def test_works_on_objects(self):
        class Row:
            full_name = "Awa Jallow"
            gender = "female"
        assert len(apply_filters([Row()], FilterState(gender="female"))) == 1


class TestFirstComeFirstServed:
    def test_ascending_created_at_with_undated_last(self):
        assert _ids(sort_first_come_first_served(RECORDS)) == ["2", "3", "1", "4"]

    def test_datetime_objects(self):
        rows = [
            {"id": "b", "created_at": datetime(2024, 2, 1, tzinfo=timezone.utc)},
            {"id": "a", "created_at": datetime(2024, 1, 1)},
        ]
        assert _ids(sort_first_come_first_served(rows)) == ["a", "b"]


class TestPaginate:
    def test_pages_cover_every_item_once(self):
        items = list(range(23))
        seen = []
        for page in range(1, 4):
            seen.extend(paginate(items, page, 10).items)
        assert seen == items

    def test_page_metadata(self):
        page = paginate(list(range(23)), 3, 10)
        assert page.items == [20, 21, 22]
        assert page.total_pages == 3
        assert page.has_prev and not page.has_next

    def test_beyond_last_page_is_empty(self):
        assert paginate(list(range(5)), 4, 2).items == []

    def test_empty_input(self):
        page = paginate([], 1, 50)
        assert page.items == []
        assert page.total_pages == 0

    @pytest.mark.parametrize("page,size", [(0, 10), (1, 0)])
    def test_rejects_bad_arguments(self, page, size):
        with pytest.raises(ValueError):
            paginate([1, 2, 3], page, size)

    def test_clamp_page(self):
        assert clamp_page(9, 3) == 3
        assert clamp_page(0, 3) == 1
        assert clamp_page(5, 0) == 1


class TestPageWindow:
    def test_few_pages_shows_all(self):
        assert page_window(2, 3) == [1, 2, 3]

    def test_near_start(self):
        assert page_window(1, 10) == [1, 2, 3, 4, None, 10]

    def test_near_end(self):
        assert page_window(10, 10) == [1, None, 7, 8, 9, 10]

    def test_middle(self):
        assert page_window(5, 10) == [1, None, 4, 5, 6, None, 10]


class TestTableView:
    def test_changing_a_filter_resets_page(self):
        view = TableView(page=3, page_size=1)
        view.set_filter("region", "Banjul")
        assert view.page == 1

    def test_unknown_filter_rejected(self):
        with pytest.raises(ValueError):
            TableView().set_filter("email", "x")

    def test_set_page_clamps(self):
        view = TableView(page_size=2)
        assert view.set_page(10, total_items=5) == 3

    def test_view_filters_sorts_and_pages(self):
        view = TableView(filters=FilterState(region="Kanifing"), page=1, page_size=1)
        page = view.view(RECORDS)
        assert page.total == 2
        assert _ids(page.items) == ["3"]

    def test_view_clamps_page_after_filtering(self):
        view = TableView(page=5, page_size=2)
        page = view.view(RECORDS)
        assert page.page == 2
        assert _ids(page.items) == ["1", "4"]
