from pathlib import Path

import pytest

from budgetbuddy.domain import BudgetSetting, ExpenseRecord, FilterSpec, SessionUser
from budgetbuddy.errors import AuthError, NetworkError, NotFoundError, OwnershipError, ValidationError
from budgetbuddy.session import SessionContext
from budgetbuddy.store import MemoryStore, load_seed

SEED = Path(__file__).resolve().parent.parent / "data" / "seed.json"


def make_expense(id, owner_id, amount, day):
    return ExpenseRecord(
        id=id,
        owner_id=owner_id,
        amount=amount,
        description=f"expense {id}",
        category="Other",
        date=day,
        created_at="2024-01-01T00:00:00+00:00",
    )


def make_store(user_id="u1"):
    session = SessionContext(SessionUser(user_id))
    expenses = (
        make_expense("e1", "u1", 10, "2024-01-05"),
        make_expense("e2", "u1", 20, "2024-01-09"),
        make_expense("e3", "u2", 30, "2024-01-07"),
    )
    return MemoryStore(session, expenses, (BudgetSetting("u2", 900, 200),))


def new_fields(**overrides):
    fields = {"amount": 8, "description": "  Taxi ", "category": "Transportation", "date": "2024-01-10"}
    fields.update(overrides)
    return fields


def test_load_seed():
    users, expenses, budgets = load_seed(str(SEED))

    assert len(users) >= 2
    assert len(expenses) >= 10
    assert len(budgets) >= 1
    assert {e.owner_id for e in expenses} <= {u.user_id for u in users}


@pytest.mark.asyncio
async def test_list_is_owner_scoped_and_newest_first():
    store = make_store()
    rows = await store.list_expenses("u1")
    assert [r.id for r in rows] == ["e2", "e1"]


@pytest.mark.asyncio
async def test_list_with_server_side_filter():
    store = make_store()
    rows = await store.list_expenses("u1", FilterSpec(min_amount=15))
    assert [r.id for r in rows] == ["e2"]


@pytest.mark.asyncio
async def test_other_owner_is_rejected():
    store = make_store()
    with pytest.raises(OwnershipError):
        await store.list_expenses("u2")
    with pytest.raises(AuthError):
        await store.insert_expense("u2", new_fields())


@pytest.mark.asyncio
async def test_signed_out_is_rejected():
    store = make_store()
    store.session.sign_out()
    with pytest.raises(AuthError):
        await store.list_expenses("u1")


@pytest.mark.asyncio
async def test_insert_assigns_id_and_trims():
    store = make_store()
    record = await store.insert_expense("u1", new_fields())
    assert record.id
    assert record.owner_id == "u1"
    assert record.description == "Taxi"
    assert record.created_at
    assert record.updated_at is None
    assert record in await store.list_expenses("u1")


@pytest.mark.asyncio
async def test_insert_missing_fields():
    store = make_store()
    with pytest.raises(ValidationError):
        await store.insert_expense("u1", new_fields(description=""))
    assert len(await store.list_expenses("u1")) == 2


@pytest.mark.asyncio
async def test_update_sets_updated_at():
    store = make_store()
    updated = await store.update_expense("e1", "u1", {"amount": 12})
    assert updated.amount == 12
    assert updated.updated_at is not None
    assert updated.created_at == "2024-01-01T00:00:00+00:00"


@pytest.mark.asyncio
async def test_update_missing_or_foreign_record():
    store = make_store()
    with pytest.raises(NotFoundError):
        await store.update_expense("nope", "u1", {"amount": 1})
    with pytest.raises(NotFoundError):
        await store.update_expense("e3", "u1", {"amount": 1})


@pytest.mark.asyncio
async def test_delete_is_idempotent_and_owner_scoped():
    store = make_store()
    await store.delete_expense("e1", "u1")
    await store.delete_expense("e1", "u1")
    await store.delete_expense("e3", "u1")
    assert [r.id for r in await store.list_expenses("u1")] == ["e2"]

    store.session.sign_in(SessionUser("u2"))
    assert [r.id for r in await store.list_expenses("u2")] == ["e3"]


@pytest.mark.asyncio
async def test_budget_upsert():
    store = make_store()
    assert await store.get_budget_setting("u1") is None
    first = await store.upsert_budget_setting("u1", {"monthly_budget": 2000})
    assert first.monthly_budget == 2000
    second = await store.upsert_budget_setting("u1", {"weekly_budget": 400})
    assert second == BudgetSetting("u1", 2000, 400)
    assert await store.get_budget_setting("u1") == second


@pytest.mark.asyncio
async def test_injected_failure_surfaces_once():
    store = make_store()
    store.fail_next(NetworkError("offline"))
    with pytest.raises(NetworkError):
        await store.list_expenses("u1")
    assert len(await store.list_expenses("u1")) == 2


@pytest.mark.asyncio
async def test_get_session():
    store = make_store()
    assert (await store.get_session()).user_id == "u1"
