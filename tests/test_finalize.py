# tests/test_finalize.py

import threading
from datetime import date

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker

from backend.app.core.constants import PAYMENT_STATUS_PAID, PAYMENT_STATUS_PENDING
from backend.app.db import models
from backend.app.db.base import Base
from backend.app.db.models import AllocationScope, UnitType
from backend.app.utils.quotas.errors import (
    BudgetNotFoundError,
    CategoryNotFoundError,
    CondominiumNotFoundError,
    DegenerateWeightError,
    PersistenceError,
    QuotaValidationError,
    ScheduleAlreadyFinalizedError,
    ScheduleNotFoundError,
)
from backend.app.utils.quotas import finalize as finalize_module
from backend.app.utils.quotas.finalize import (
    create_standalone_quota,
    finalize_lock,
    finalize_budget_schedule,
    preview_budget_schedule,
)
from backend.app.utils.quotas.storage import (
    clear_generated_quotas,
    list_schedule_items,
    list_schedules,
    load_budget_inputs,
    set_category_allocation,
)

from factories import add_category, add_unit


def _count(db, model):
    return db.execute(select(func.count()).select_from(model)).scalar_one()


# ============================
# Carga
# ============================

def test_load_budget_inputs(db, seed):
    cat = add_category(
        db,
        seed["budget"],
        allocation_scope=AllocationScope.unit_types.value,
        eligible_unit_types=["commercial"],
        contributes_to_fcr=False,
    )
    loaded = load_budget_inputs(db, seed["budget"].id)

    assert loaded.budget.year == 2025
    assert loaded.budget.reserve_fund_percentage == 10
    assert [u.unit_number for u in loaded.units] == ["A", "B"]
    assert loaded.categories[0].id == cat.id
    assert loaded.categories[0].eligible_unit_types == frozenset({UnitType.commercial})
    assert loaded.categories[0].contributes_to_fcr is False


def test_load_budget_inputs_rejects_malformed_types(db, seed):
    add_category(
        db,
        seed["budget"],
        allocation_scope=AllocationScope.unit_types.value,
        eligible_unit_types="residential",
    )
    with pytest.raises(QuotaValidationError):
        load_budget_inputs(db, seed["budget"].id)


def test_load_budget_inputs_unknown_budget(db):
    with pytest.raises(BudgetNotFoundError) as exc:
        load_budget_inputs(db, 999)
    assert exc.value.budget_id == 999


def test_preview_does_not_write(db, seed):
    add_category(db, seed["budget"])
    schedule = preview_budget_schedule(db, seed["budget"].id)

    assert schedule.grand_total == pytest.approx(1320)
    assert _count(db, models.QuotaSchedule) == 0
    assert _count(db, models.Payment) == 0


# ============================
# Finalizar orçamento
# ============================

def test_finalize_persists_snapshot_items_and_payments(db, seed):
    add_category(db, seed["budget"])
    result = finalize_budget_schedule(db, seed["budget"].id)

    assert result.version == 1
    assert result.status == "finalized"
    assert not result.is_standalone
    assert result.item_count == 24
    assert result.obligation_count == 24
    assert result.total_amount == pytest.approx(1320)

    snapshot = db.get(models.QuotaSchedule, result.schedule_id)
    assert snapshot.notes == f"Generated automatically on {date.today().isoformat()}"
    assert _count(db, models.QuotaScheduleItem) == 24

    payments = db.execute(select(models.Payment).order_by(models.Payment.id)).scalars().all()
    assert len(payments) == 24
    assert all(p.status == PAYMENT_STATUS_PENDING for p in payments)
    assert all(p.schedule_id == result.schedule_id for p in payments)
    assert payments[0].issue_date == date(2025, 2, 1)
    assert payments[0].due_date == date(2025, 2, 15)
    assert payments[11].period == "2026-01"


def test_finalize_keeps_custom_notes(db, seed):
    add_category(db, seed["budget"])
    result = finalize_budget_schedule(db, seed["budget"].id, notes="Assembleia 12/03")
    assert db.get(models.QuotaSchedule, result.schedule_id).notes == "Assembleia 12/03"


def test_finalize_twice_is_rejected(db, seed):
    add_category(db, seed["budget"])
    finalize_budget_schedule(db, seed["budget"].id)

    with pytest.raises(ScheduleAlreadyFinalizedError):
        finalize_budget_schedule(db, seed["budget"].id)
    assert _count(db, models.Payment) == 24


def test_finalize_again_after_clearing_quotas(db, seed):
    add_category(db, seed["budget"])
    finalize_budget_schedule(db, seed["budget"].id)
    clear_generated_quotas(db, seed["condominium"].id)

    result = finalize_budget_schedule(db, seed["budget"].id)
    assert result.version == 1
    assert _count(db, models.Payment) == 24


def test_finalize_without_amounts_is_rejected(db, seed):
    with pytest.raises(QuotaValidationError):
        finalize_budget_schedule(db, seed["budget"].id)
    assert _count(db, models.QuotaSchedule) == 0


def test_finalize_unknown_budget(db):
    with pytest.raises(BudgetNotFoundError):
        finalize_budget_schedule(db, 12345)


def test_finalize_is_atomic_when_storage_fails(db, seed, monkeypatch):
    add_category(db, seed["budget"])
    budget_id = seed["budget"].id

    real_flush = db.flush
    calls = {"n": 0}

    def failing_flush(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 2:
            raise OperationalError("INSERT", {}, Exception("disk full"))
        return real_flush(*args, **kwargs)

    monkeypatch.setattr(db, "flush", failing_flush)
    with pytest.raises(PersistenceError) as exc:
        finalize_budget_schedule(db, budget_id)
    monkeypatch.undo()

    assert exc.value.budget_id == budget_id
    assert _count(db, models.QuotaSchedule) == 0
    assert _count(db, models.QuotaScheduleItem) == 0
    assert _count(db, models.Payment) == 0


# ============================
# Quota avulsa
# ============================

def test_standalone_quota_persists_payments(db, seed):
    condo_id = seed["condominium"].id
    result = create_standalone_quota(
        db,
        condo_id,
        title="Obras telhado",
        total_amount=300,
        duration_months=3,
        start=date(2025, 12, 1),
    )

    assert result.is_standalone
    assert result.obligation_count == 6
    assert result.total_amount == pytest.approx(300)

    snapshot = db.get(models.QuotaSchedule, result.schedule_id)
    assert snapshot.condominium_id == condo_id
    assert snapshot.budget_id is None
    assert snapshot.title == "Obras telhado"
    assert snapshot.duration_months == 3

    periods = sorted({p.period for p in db.execute(select(models.Payment)).scalars()})
    assert periods == ["2025-12", "2026-01", "2026-02"]


def test_standalone_quota_validation_happens_before_lookup(db):
    with pytest.raises(QuotaValidationError):
        create_standalone_quota(db, 999, title=" ", total_amount=300, duration_months=3)


def test_standalone_quota_unknown_condominium(db):
    with pytest.raises(CondominiumNotFoundError):
        create_standalone_quota(db, 999, title="X", total_amount=300, duration_months=3)


def test_standalone_quota_zero_weights_writes_nothing(db, seed):
    for u in seed["units"]:
        u.weight = 0
    db.commit()

    with pytest.raises(DegenerateWeightError):
        create_standalone_quota(
            db, seed["condominium"].id, title="X", total_amount=300, duration_months=3
        )
    assert _count(db, models.QuotaSchedule) == 0
    assert _count(db, models.Payment) == 0


# ============================
# Planos guardados
# ============================

def test_list_schedules_includes_budget_and_standalone(db, seed):
    add_category(db, seed["budget"])
    finalize_budget_schedule(db, seed["budget"].id)
    create_standalone_quota(
        db, seed["condominium"].id, title="X", total_amount=100, duration_months=1
    )

    rows = list_schedules(db, seed["condominium"].id)
    assert len(rows) == 2
    years = {schedule.is_standalone: year for schedule, year in rows}
    assert years[False] == 2025
    assert years[True] is None


def test_list_schedules_unknown_condominium(db):
    with pytest.raises(CondominiumNotFoundError):
        list_schedules(db, 999)


def test_list_schedule_items(db, seed):
    add_category(db, seed["budget"])
    result = finalize_budget_schedule(db, seed["budget"].id)

    items = list_schedule_items(db, result.schedule_id)
    assert len(items) == 24
    assert [i.month_index for i in items[:12]] == list(range(12))

    with pytest.raises(ScheduleNotFoundError):
        list_schedule_items(db, 999)


def test_clear_keeps_paid_payments(db, seed):
    add_category(db, seed["budget"])
    finalize_budget_schedule(db, seed["budget"].id)

    paid = db.execute(select(models.Payment).order_by(models.Payment.id)).scalars().first()
    paid.status = PAYMENT_STATUS_PAID
    db.commit()

    counts = clear_generated_quotas(db, seed["condominium"].id)
    assert counts == {"schedules": 1, "items": 24, "payments": 23}

    remaining = db.execute(select(models.Payment)).scalars().all()
    assert len(remaining) == 1
    assert remaining[0].status == PAYMENT_STATUS_PAID
    assert remaining[0].schedule_id is None
    assert _count(db, models.QuotaSchedule) == 0


# ============================
# Ámbito de categoría
# ============================

def test_set_allocation_custom_replaces_assignments(db, seed):
    cat = add_category(db, seed["budget"])
    unit_a, unit_b = seed["units"]

    set_category_allocation(db, cat.id, "custom", unit_ids=[unit_a.id, unit_b.id])
    updated = set_category_allocation(db, cat.id, "custom", unit_ids=[unit_b.id])

    assert updated.allocation_scope == "custom"
    assert [a.unit_id for a in updated.unit_assignments] == [unit_b.id]

    schedule = preview_budget_schedule(db, seed["budget"].id)
    assert schedule.row_for(unit_a.id).annual_total == 0
    assert schedule.row_for(unit_b.id).monthly[0] == pytest.approx(110)


def test_set_allocation_unit_types(db, seed):
    cat = add_category(db, seed["budget"])
    updated = set_category_allocation(
        db, cat.id, "unit_types", unit_types=["parking", "residential"]
    )
    assert updated.eligible_unit_types == ["residential", "parking"]
    assert updated.unit_assignments == []


def test_set_allocation_back_to_all_clears_assignments(db, seed):
    cat = add_category(db, seed["budget"])
    set_category_allocation(db, cat.id, "custom", unit_ids=[seed["units"][0].id])
    updated = set_category_allocation(db, cat.id, "all")
    assert updated.unit_assignments == []
    assert updated.eligible_unit_types is None


@pytest.mark.parametrize(
    "scope, kwargs",
    [
        ("unit_types", {}),
        ("custom", {}),
        ("everyone", {}),
        ("unit_types", {"unit_types": ["villa"]}),
    ],
)
def test_set_allocation_validation(db, seed, scope, kwargs):
    cat = add_category(db, seed["budget"])
    with pytest.raises(QuotaValidationError):
        set_category_allocation(db, cat.id, scope, **kwargs)


def test_set_allocation_rejects_units_from_other_condominium(db, seed):
    cat = add_category(db, seed["budget"])
    other = models.Condominium(name="Outro")
    db.add(other)
    db.commit()
    foreign = add_unit(db, other, "Z", 100)

    with pytest.raises(QuotaValidationError) as exc:
        set_category_allocation(db, cat.id, "custom", unit_ids=[foreign.id])
    assert exc.value.unit_id == foreign.id


def test_set_allocation_unknown_category(db):
    with pytest.raises(CategoryNotFoundError):
        set_category_allocation(db, 999, "all")


def test_finalize_lock_is_shared_per_key():
    assert finalize_lock("budget", 1) is finalize_lock("budget", 1)
    assert finalize_lock("budget", 1) is not finalize_lock("budget", 2)
    assert finalize_lock("budget", 1) is not finalize_lock("standalone", 1)


def test_finalize_lock_entry_is_released_when_unused():
    lock = finalize_lock("budget", 4242)
    assert ("budget", 4242) in finalize_module._LOCKS
    del lock
    assert ("budget", 4242) not in finalize_module._LOCKS


def test_concurrent_finalize_runs_create_payments_once(tmp_path):
    eng = create_engine(
        f"sqlite:///{tmp_path / 'quotas.db'}",
        connect_args={"check_same_thread": False},
        future=True,
    )
    Base.metadata.create_all(bind=eng)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=eng, future=True)

    with Session() as setup:
        condo = models.Condominium(name="Edificio Aurora")
        setup.add(condo)
        setup.flush()
        setup.add_all(
            [
                models.Unit(
                    condominium_id=condo.id, unit_number="A",
                    unit_type=UnitType.residential, weight=600,
                ),
                models.Unit(
                    condominium_id=condo.id, unit_number="B",
                    unit_type=UnitType.commercial, weight=400,
                ),
            ]
        )
        budget = models.Budget(condominium_id=condo.id, year=2025, reserve_fund_percentage=10)
        setup.add(budget)
        setup.flush()
        add_category(setup, budget)
        budget_id = budget.id

    workers = 4
    barrier = threading.Barrier(workers)
    outcomes = []
    outcomes_guard = threading.Lock()

    def run():
        session = Session()
        try:
            barrier.wait()
            finalize_budget_schedule(session, budget_id)
            outcome = "ok"
        except ScheduleAlreadyFinalizedError:
            outcome = "already_finalized"
        except Exception as e:
            outcome = type(e).__name__
        finally:
            session.close()
        with outcomes_guard:
            outcomes.append(outcome)

    threads = [threading.Thread(target=run) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(outcomes) == ["already_finalized"] * (workers - 1) + ["ok"]
    with Session() as check:
        assert _count(check, models.QuotaSchedule) == 1
        assert _count(check, models.Payment) == 24
    eng.dispose()


def test_status_check_constraints_use_known_values(db, seed):
    db.add(
        models.Payment(
            unit_id=seed["units"][0].id,
            amount=10,
            issue_date=date(2025, 2, 1),
            status="cancelled",
        )
    )
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()

    db.add(models.QuotaSchedule(condominium_id=seed["condominium"].id, status="archived"))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()
