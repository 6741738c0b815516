import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
import logging
from datetime import date

import pandas as pd
import plotly.express as px
import streamlit as st

from budgetbuddy.config import DEMO_USER, LOG_LEVEL, SEED_PATH
from budgetbuddy.dates import parse_day
from budgetbuddy.domain import Category, SORT_FIELDS, ASC, DESC, category_style
from budgetbuddy.formatting import format_currency, format_date
from budgetbuddy.services import BudgetService, DashboardService, ExpenseListController
from budgetbuddy.session import SessionContext, SIGNED_OUT
from budgetbuddy.store import MemoryStore, load_seed

logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

st.set_page_config(page_title="Budget Buddy", layout="wide")


def run(coro):
    return asyncio.run(coro)


if "session" not in st.session_state:
    users, _, _ = load_seed(SEED_PATH)
    session = SessionContext()
    st.session_state.users = {u.user_id: u for u in users}
    st.session_state.session = session
    st.session_state.store = MemoryStore.from_seed(SEED_PATH, session)
    st.session_state.dashboard = DashboardService(st.session_state.store, session)
    st.session_state.expenses = ExpenseListController(st.session_state.store, session)
    st.session_state.budgets = BudgetService(st.session_state.store, session)
    st.session_state.expenses_loaded = False

    def _on_auth_change(event):
        st.session_state.expenses_loaded = False
        if event.name == SIGNED_OUT:
            st.session_state.expenses.view.load(())

    session.subscribe(_on_auth_change)

session: SessionContext = st.session_state.session
controller: ExpenseListController = st.session_state.expenses

st.sidebar.markdown("### 👤 Profile")
if session.user is None:
    user_ids = list(st.session_state.users)
    default = user_ids.index(DEMO_USER) if DEMO_USER in user_ids else 0
    chosen = st.sidebar.selectbox("Sign in as", user_ids, index=default,
                                  format_func=lambda uid: st.session_state.users[uid].email or uid)
    if st.sidebar.button("Sign in", key="sign_in"):
        session.sign_in(st.session_state.users[chosen])
        st.rerun()
    st.title("💰 Budget Buddy")
    st.info("Sign in to track your expenses.")
    st.stop()

st.sidebar.caption(f"Hello, {session.user.display_name or session.user.email}!")
if st.sidebar.button("Sign out", key="sign_out"):
    session.sign_out()
    st.rerun()

if not st.session_state.expenses_loaded:
    loaded = run(controller.refresh())
    if loaded is not None and loaded.is_right():
        st.session_state.expenses_loaded = True
    elif loaded is not None:
        st.error(f"Failed to fetch expenses: {loaded.get_error()}")

menu = st.sidebar.radio(
    "Menu",
    ["🏠 Dashboard", "🧾 Expenses", "➕ Add Expense", "🎯 Budget"],
    key="menu",
)


def expenses_df(records):
    return pd.DataFrame([
        {
            "Date": format_date(r.date),
            "Description": r.description,
            "Category": f"{category_style(r.category).icon} {r.display_category}",
            "Amount": format_currency(r.amount),
        }
        for r in records
    ], columns=["Date", "Description", "Category", "Amount"])


FILTER_KEYS = ("flt_category", "flt_start", "flt_end", "flt_min", "flt_max")


def as_date(value):
    day = parse_day(value)
    return None if pd.isna(day) else day.date()


def as_float(value):
    return None if value is None else float(value)


def stage_filters(view):
    category = st.session_state.get("flt_category", "All")
    view.stage(
        category=None if category == "All" else category,
        start_date=st.session_state.get("flt_start"),
        end_date=st.session_state.get("flt_end"),
        min_amount=st.session_state.get("flt_min"),
        max_amount=st.session_state.get("flt_max"),
    )


def apply_filters(view):
    # callbacks run before the script, so pick up edits made in the same rerun
    stage_filters(view)
    view.apply()


def clear_filters(view):
    view.clear()
    for key in FILTER_KEYS:
        st.session_state.pop(key, None)


if menu == "🏠 Dashboard":
    st.title("🏠 Dashboard")
    st.caption("Welcome back! Here's an overview of your expenses.")

    granularity = st.segmented_control("Trend", ["day", "month"], default="day",
                                       format_func=lambda g: "Last 7 days" if g == "day" else "Last 6 months")
    loaded = run(st.session_state.dashboard.load(date.today(), granularity or "day"))
    if loaded is None:
        st.stop()
    if loaded.is_left():
        st.error(f"Could not load the dashboard: {loaded.get_error()}")
        if st.button("Retry"):
            st.rerun()
        st.stop()
    report = loaded.get_or_else(None)

    k1, k2, k3, k4 = st.columns(4)
    with k1:
        st.metric("Total Expenses", format_currency(report.summary.total))
    with k2:
        st.metric("This Month", format_currency(report.summary.this_month))
    with k3:
        st.metric("This Week", format_currency(report.summary.this_week))
    with k4:
        st.metric("Total Entries", report.entries)
    st.caption(
        f"Past month: {report.last_month.count} expense(s), "
        f"{format_currency(report.last_month.sum)} spent, "
        f"{format_currency(report.last_month.average)} on average"
    )

    col_cat, col_trend = st.columns(2)
    with col_cat:
        if report.categories:
            df_cat = pd.DataFrame([{"Category": c.category.value, "Total": c.total} for c in report.categories])
            fig_cat = px.pie(
                df_cat,
                values="Total",
                names="Category",
                title="Spending by Category",
                color="Category",
                color_discrete_map={c.value: category_style(c).color for c in Category},
            )
            st.plotly_chart(fig_cat, use_container_width=True)
        else:
            st.info("No expenses yet.")
    with col_trend:
        fig_ts = px.bar(
            x=[p.label for p in report.series],
            y=[p.total for p in report.series],
            labels={"x": "Period", "y": "Spent"},
            title="Spending Trend",
        )
        st.plotly_chart(fig_ts, use_container_width=True)

    st.subheader("🎯 Budget")
    b1, b2 = st.columns(2)
    with b1:
        st.caption(f"Month: {format_currency(report.budget.spent_month)} of {format_currency(report.budget.monthly_budget)}")
        st.progress(min(1.0, report.budget.month_ratio))
        if report.budget.over_month:
            st.warning("Monthly budget exceeded")
    with b2:
        st.caption(f"Week: {format_currency(report.budget.spent_week)} of {format_currency(report.budget.weekly_budget)}")
        st.progress(min(1.0, report.budget.week_ratio))
        if report.budget.over_week:
            st.warning("Weekly budget exceeded")

    st.subheader("🕑 Recent Expenses")
    if report.recent:
        st.table(expenses_df(report.recent))
    else:
        st.info("Add your first expense from the menu.")

elif menu == "🧾 Expenses":
    view = controller.view
    st.title("🧾 Your Expenses")
    label = "Filters" + (" · Active" if view.has_active_filters else "")

    with st.expander(label, expanded=view.has_active_filters):
        f1, f2, f3 = st.columns(3)
        with f1:
            st.selectbox("Category", ["All"] + list(Category.labels()), key="flt_category",
                         index=0 if view.staged.category is None
                         else 1 + Category.labels().index(Category.coerce(view.staged.category).value))
        with f2:
            st.date_input("Start date", value=as_date(view.staged.start_date), key="flt_start")
            st.date_input("End date", value=as_date(view.staged.end_date), key="flt_end")
        with f3:
            st.number_input("Min amount", min_value=0.0, value=as_float(view.staged.min_amount), step=1.0, key="flt_min")
            st.number_input("Max amount", min_value=0.0, value=as_float(view.staged.max_amount), step=1.0, key="flt_max")
        stage_filters(view)
        a1, a2 = st.columns(2)
        with a1:
            st.button("Apply filters", key="flt_apply", disabled=not view.has_staged_changes,
                      on_click=apply_filters, args=(view,))
        with a2:
            st.button("Clear", key="flt_clear",
                      disabled=not (view.has_active_filters or view.has_staged_changes),
                      on_click=clear_filters, args=(view,))
        if view.has_staged_changes:
            st.caption("You have filter changes that are not applied yet.")

    s1, s2 = st.columns(2)
    with s1:
        sort_field = st.selectbox("Sort by", SORT_FIELDS, index=SORT_FIELDS.index(view.sort_spec.field))
    with s2:
        direction = st.radio("Order", [DESC, ASC], horizontal=True,
                             index=0 if view.sort_spec.direction == DESC else 1)
    view.set_sort(sort_field, direction)

    summary = view.summary
    m1, m2, m3 = st.columns(3)
    m1.metric("Count", summary.count)
    m2.metric("Total", format_currency(summary.sum))
    m3.metric("Average", format_currency(summary.average))

    rows = view.rows
    if not rows:
        st.info("No expenses match the selected filters")
    for r in rows:
        c1, c2, c3, c4, c5 = st.columns([2, 4, 3, 2, 1])
        c1.write(format_date(r.date))
        c2.write(r.description)
        c3.write(f"{category_style(r.category).icon} {r.display_category}")
        c4.write(format_currency(r.amount))
        with c5:
            with st.popover("⋯", disabled=controller.is_busy(r.id)):
                with st.form(f"edit_{r.id}"):
                    new_amount = st.number_input("Amount", min_value=0.01, value=float(r.amount), step=1.0)
                    new_desc = st.text_input("Description", value=r.description)
                    new_cat = st.selectbox("Category", Category.labels(),
                                           index=Category.labels().index(r.display_category.value))
                    if st.form_submit_button("Save"):
                        result = run(controller.update(r.id, {
                            "amount": new_amount, "description": new_desc, "category": new_cat,
                        }))
                        if result.is_left():
                            st.error(result.get_error())
                        else:
                            st.rerun()
                st.caption(f"Delete “{r.description}”? This cannot be undone.")
                if st.button("Delete", key=f"del_{r.id}", type="primary"):
                    result = run(controller.delete(r.id))
                    if result.is_left():
                        st.error(result.get_error())
                    else:
                        st.rerun()

    if rows:
        csv = pd.DataFrame([r.to_row() for r in rows]).to_csv(index=False)
        st.download_button("⬇️ Download CSV", csv, file_name="expenses.csv", mime="text/csv")

elif menu == "➕ Add Expense":
    st.title("➕ Add Expense")
    with st.form("add_expense", clear_on_submit=True):
        col1, col2 = st.columns(2)
        with col1:
            amount = st.number_input("Amount", min_value=0.0, step=1.0, format="%.2f")
            spent_on = st.date_input("Date", value=date.today())
        with col2:
            category = st.selectbox("Category", Category.labels(), index=Category.labels().index("Other"))
            description = st.text_input("Description")
        submitted = st.form_submit_button("Add Expense")

    if submitted:
        result = run(controller.create({
            "amount": amount,
            "description": description,
            "category": category,
            "date": spent_on,
        }))
        if result.is_left():
            st.error(result.get_error())
        else:
            st.success("Expense added successfully!")

elif menu == "🎯 Budget":
    st.title("🎯 Budget")
    service: BudgetService = st.session_state.budgets
    current = run(service.current())
    if current.is_left():
        st.error(f"Could not load your budget: {current.get_error()}")
        st.stop()
    setting = current.get_or_else(None)
    with st.form("budget"):
        monthly = st.number_input("Monthly budget", min_value=1.0, value=float(setting.monthly_budget), step=50.0)
        weekly = st.number_input("Weekly budget", min_value=1.0, value=float(setting.weekly_budget), step=10.0)
        if st.form_submit_button("Save"):
            saved = run(service.save(monthly, weekly))
            if saved.is_left():
                st.error(saved.get_error())
            else:
                st.success("Budget saved")
