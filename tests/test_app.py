from datetime import date, timedelta
from pathlib import Path

import pytest
from streamlit.testing.v1 import AppTest

ROOT = Path(__file__).resolve().parent.parent


def count_metric(at):
    return next(m.value for m in at.metric if m.label == "Count")


@pytest.fixture
def expenses_page(monkeypatch):
    monkeypatch.chdir(ROOT)
    at = AppTest.from_file(str(ROOT / "app" / "main.py"), default_timeout=30)
    at.run()
    at.button(key="sign_in").click().run()
    at.radio(key="menu").set_value("🧾 Expenses").run()
    assert not at.exception
    return at


def test_clear_resets_filter_widgets(expenses_page):
    at = expenses_page
    everything = count_metric(at)

    at.date_input(key="flt_start").set_value(date.today() + timedelta(days=1)).run()
    assert any("not applied yet" in c.value for c in at.caption)
    at.button(key="flt_apply").click().run()
    assert count_metric(at) == "0"

    at.button(key="flt_clear").click().run()
    assert not at.exception
    assert at.date_input(key="flt_start").value is None
    assert at.selectbox(key="flt_category").value == "All"
    assert not any("not applied yet" in c.value for c in at.caption)
    assert count_metric(at) == everything


def test_dashboard_shows_past_month_summary(monkeypatch):
    monkeypatch.chdir(ROOT)
    at = AppTest.from_file(str(ROOT / "app" / "main.py"), default_timeout=30)
    at.run()
    at.button(key="sign_in").click().run()
    assert not at.exception
    assert any(c.value.startswith("Past month:") for c in at.caption)
