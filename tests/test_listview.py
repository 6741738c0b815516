from datetime import date

import pytest

from budgetbuddy.domain import (
    ASC,
    DESC,
    ExpenseRecord,
    FilterSpec,
    Insert,
    ListSummary,
    Remove,
    Replace,
    SortSpec,
)
from budgetbuddy.errors import ValidationError
from budgetbuddy.listview import (
    ExpenseListView,
    apply_filter,
    apply_mutation,
    apply_sort,
    by_amount_range,
    by_category,
    by_date_range,
    derive_summary,
)


def make_expense(id, amount, category, day, description=""):
    return ExpenseRecord(
        id=id,
        owner_id="u1",
        amount=amount,
        description=description,
        category=category,
        date=day,
        created_at="2024-01-01T00:00:00+00:00",
    )


def make_sample():
    return (
        make_expense("e1", 50, "Food & Dining", "2024-01-05", "groceries"),
        make_expense("e2", 30, "Food & Dining", "2024-01-10", "Lunch"),
        make_expense("e3", 20, "Travel", "2024-01-15", "bus to airport"),
    )


def ids(records):
    return [r.id for r in records]


def test_filter_category_and_min_amount():
    result = apply_filter(make_sample(), FilterSpec(category="Travel", min_amount=10))
    assert ids(result) == ["e3"]


def test_empty_filter_returns_everything_in_order():
    trans = make_sample()
    assert apply_filter(trans, FilterSpec()) == trans


def test_filter_date_range_is_inclusive():
    trans = make_sample()
    spec = FilterSpec(start_date="2024-01-05", end_date=date(2024, 1, 10))
    assert ids(apply_filter(trans, spec)) == ["e1", "e2"]


def test_filter_amount_range():
    spec = FilterSpec(min_amount=20, max_amount=30)
    assert ids(apply_filter(make_sample(), spec)) == ["e2", "e3"]


def test_filter_bad_date_only_fails_date_bounds():
    trans = make_sample() + (make_expense("bad", 5, "Travel", "not a date"),)
    assert "bad" in ids(apply_filter(trans, FilterSpec(category="Travel")))
    assert "bad" not in ids(apply_filter(trans, FilterSpec(start_date="2000-01-01")))


def test_filter_category_is_exact_on_stored_value():
    trans = (make_expense("e1", 5, "Groceries", "2024-01-05"),)
    assert apply_filter(trans, FilterSpec(category="Other")) == ()
    assert ids(apply_filter(trans, FilterSpec(category="Groceries"))) == ["e1"]


def test_predicate_factories():
    t1, t2, t3 = make_sample()
    assert list(filter(by_category("Travel"), [t1, t2, t3])) == [t3]
    assert list(filter(by_date_range("2024-01-06", None), [t1, t2, t3])) == [t2, t3]
    assert list(filter(by_amount_range(None, 30), [t1, t2, t3])) == [t2, t3]


def test_sort_default_is_date_descending():
    assert ids(apply_sort(make_sample())) == ["e3", "e2", "e1"]


def test_sort_amount_both_directions():
    trans = make_sample()
    assert ids(apply_sort(trans, SortSpec("amount", ASC))) == ["e3", "e2", "e1"]
    assert ids(apply_sort(trans, SortSpec("amount", DESC))) == ["e1", "e2", "e3"]


def test_sort_text_is_case_insensitive():
    trans = make_sample()
    assert ids(apply_sort(trans, SortSpec("description", ASC))) == ["e3", "e1", "e2"]


def test_sort_is_stable_on_ties():
    by_date = apply_sort(make_sample(), SortSpec("date", ASC))
    by_cat = apply_sort(by_date, SortSpec("category", ASC))
    assert ids(by_cat) == ["e1", "e2", "e3"]
    by_cat_desc = apply_sort(by_date, SortSpec("category", DESC))
    assert ids(by_cat_desc) == ["e3", "e1", "e2"]


def test_sort_puts_bad_dates_last():
    trans = (make_expense("bad", 1, "Other", "??"),) + make_sample()
    assert ids(apply_sort(trans, SortSpec("date", ASC)))[-1] == "bad"
    assert ids(apply_sort(trans, SortSpec("date", DESC)))[-1] == "bad"


def test_sort_spec_rejects_unknown_field():
    with pytest.raises(ValueError):
        SortSpec("owner_id", ASC)


def test_derive_summary():
    assert derive_summary(make_sample()) == ListSummary(count=3, sum=100, average=pytest.approx(33.33))


def test_derive_summary_empty():
    assert derive_summary([]) == ListSummary(count=0, sum=0, average=0)


def test_insert_appends_without_touching_input():
    trans = make_sample()
    new = make_expense("e4", 1, "Other", "2024-01-16")
    result = apply_mutation(trans, Insert(new))
    assert ids(result) == ["e1", "e2", "e3", "e4"]
    assert len(trans) == 3


def test_replace_merges_patch():
    result = apply_mutation(make_sample(), Replace("e2", {"amount": 35, "description": "Dinner"}))
    e2 = [r for r in result if r.id == "e2"][0]
    assert e2.amount == 35
    assert e2.description == "Dinner"
    assert e2.category == "Food & Dining"


def test_replace_missing_id_is_noop():
    trans = make_sample()
    assert apply_mutation(trans, Replace("nope", {"amount": 1})) == trans


def test_replace_rejects_immutable_and_unknown_fields():
    with pytest.raises(ValidationError):
        apply_mutation(make_sample(), Replace("e1", {"id": "x"}))
    with pytest.raises(ValidationError):
        apply_mutation(make_sample(), Replace("e1", {"colour": "red"}))


def test_remove_is_idempotent():
    once = apply_mutation(make_sample(), Remove("e1"))
    twice = apply_mutation(once, Remove("e1"))
    assert ids(once) == ["e2", "e3"]
    assert twice == once


def test_staged_filter_needs_apply():
    view = ExpenseListView(make_sample(), mode="staged")
    view.stage(category="Travel")
    assert view.has_staged_changes
    assert len(view.rows) == 3

    view.apply()
    assert not view.has_staged_changes
    assert view.has_active_filters
    assert ids(view.rows) == ["e3"]
    assert view.summary == ListSummary(count=1, sum=20, average=20)


def test_staging_back_to_applied_value_clears_flag():
    view = ExpenseListView(make_sample(), mode="staged")
    view.stage(min_amount=10)
    view.stage(min_amount=None)
    assert not view.has_staged_changes


def test_clear_applies_immediately():
    view = ExpenseListView(make_sample(), mode="staged")
    view.stage(category="Travel")
    view.apply()
    view.stage(min_amount=100)
    view.clear()
    assert not view.has_staged_changes
    assert not view.has_active_filters
    assert len(view.rows) == 3


def test_immediate_mode_applies_on_stage():
    view = ExpenseListView(make_sample(), mode="immediate")
    view.stage(max_amount=30)
    assert not view.has_staged_changes
    assert ids(view.rows) == ["e3", "e2"]


def test_toggle_sort():
    view = ExpenseListView(make_sample(), mode="staged")
    view.toggle_sort("date")
    assert view.sort_spec == SortSpec("date", ASC)
    view.toggle_sort("amount")
    assert view.sort_spec == SortSpec("amount", DESC)
    assert ids(view.rows) == ["e1", "e2", "e3"]


def test_view_patch_updates_rows():
    view = ExpenseListView(make_sample(), mode="staged")
    view.patch(Remove("e3"))
    assert ids(view.rows) == ["e2", "e1"]


def test_unknown_mode_rejected():
    with pytest.raises(ValueError):
        ExpenseListView(mode="lazy")
