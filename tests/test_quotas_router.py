# tests/test_quotas_router.py

import pytest

from backend.app.db import models

from factories import add_category

API = "/api/v1/quotas"


def test_core_endpoints(client):
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/ready").json()["db"] == "reachable"


def test_schedule_preview(client, db, seed):
    add_category(db, seed["budget"])
    budget_id = seed["budget"].id

    res = client.get(f"{API}/budgets/{budget_id}/schedule")
    assert res.status_code == 200

    body = res.json()
    assert body["year"] == 2025
    assert body["month_labels"][0] == "Feb"
    assert body["month_labels"][-1] == "Jan"
    assert [r["unit"]["unit_number"] for r in body["rows"]] == ["A", "B"]
    assert body["rows"][0]["monthly"][0] == pytest.approx(66)
    assert body["rows"][1]["annual_total"] == pytest.approx(528)
    assert body["summary"][0]["scope_label"] == "All units (2)"
    assert body["grand_total"] == pytest.approx(1320)


def test_schedule_preview_unknown_budget(client):
    res = client.get(f"{API}/budgets/999/schedule")
    assert res.status_code == 404
    assert res.json()["detail"]["budget_id"] == 999


def test_export_csv(client, db, seed):
    add_category(db, seed["budget"])

    res = client.get(f"{API}/budgets/{seed['budget'].id}/export")
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/csv")
    assert 'filename="quota-schedule-2025.csv"' in res.headers["content-disposition"]
    assert res.text.splitlines()[1].endswith(";792,00")


def test_finalize_then_conflict(client, db, seed):
    add_category(db, seed["budget"])
    budget_id = seed["budget"].id

    res = client.post(f"{API}/budgets/{budget_id}/finalize", json={"notes": "AG 2025"})
    assert res.status_code == 201
    assert res.json()["obligation_count"] == 24

    again = client.post(f"{API}/budgets/{budget_id}/finalize")
    assert again.status_code == 409


def test_finalize_empty_schedule_is_unprocessable(client, seed):
    res = client.post(f"{API}/budgets/{seed['budget'].id}/finalize")
    assert res.status_code == 422


def test_standalone_quota(client, seed):
    condo_id = seed["condominium"].id
    res = client.post(
        f"{API}/condominiums/{condo_id}/standalone",
        json={"title": "Elevador", "total_amount": 300, "duration_months": 3},
    )
    assert res.status_code == 201
    body = res.json()
    assert body["is_standalone"] is True
    assert body["obligation_count"] == 6

    listed = client.get(f"{API}/condominiums/{condo_id}/schedules").json()
    assert listed[0]["title"] == "Elevador"
    assert listed[0]["budget_year"] is None

    items = client.get(f"{API}/schedules/{body['schedule_id']}/items").json()
    assert len(items) == 6


@pytest.mark.parametrize(
    "payload",
    [
        {"title": "X", "total_amount": 0, "duration_months": 3},
        {"title": "X", "total_amount": 100, "duration_months": 121},
        {"title": "   ", "total_amount": 100, "duration_months": 3},
    ],
)
def test_standalone_quota_invalid(client, seed, payload):
    res = client.post(f"{API}/condominiums/{seed['condominium'].id}/standalone", json=payload)
    assert res.status_code == 422


def test_standalone_quota_zero_weights(client, db, seed):
    for u in seed["units"]:
        u.weight = 0
    db.commit()

    res = client.post(
        f"{API}/condominiums/{seed['condominium'].id}/standalone",
        json={"title": "X", "total_amount": 100, "duration_months": 2},
    )
    assert res.status_code == 422


def test_clear_schedules(client, db, seed):
    add_category(db, seed["budget"])
    client.post(f"{API}/budgets/{seed['budget'].id}/finalize")

    res = client.delete(f"{API}/condominiums/{seed['condominium'].id}/schedules")
    assert res.status_code == 200
    assert res.json() == {"schedules": 1, "items": 24, "payments": 24}
    assert db.query(models.Payment).count() == 0


def test_change_category_allocation(client, db, seed):
    cat = add_category(db, seed["budget"])
    unit_b = seed["units"][1]

    res = client.put(
        f"{API}/categories/{cat.id}/allocation",
        json={"scope": "custom", "unit_ids": [unit_b.id]},
    )
    assert res.status_code == 200
    assert res.json()["unit_ids"] == [unit_b.id]

    preview = client.get(f"{API}/budgets/{seed['budget'].id}/schedule").json()
    assert preview["summary"][0]["participant_count"] == 1
    assert preview["summary"][0]["scope_label"] == "Units: B"


def test_change_category_allocation_requires_types(client, db, seed):
    cat = add_category(db, seed["budget"])
    res = client.put(f"{API}/categories/{cat.id}/allocation", json={"scope": "unit_types"})
    assert res.status_code == 422
    assert res.json()["detail"]["category_id"] == cat.id


def test_unknown_entities_return_404(client):
    assert client.get(f"{API}/condominiums/999/schedules").status_code == 404
    assert client.get(f"{API}/schedules/999/items").status_code == 404
    assert client.delete(f"{API}/condominiums/999/schedules").status_code == 404
    assert client.put(f"{API}/categories/999/allocation", json={"scope": "all"}).status_code == 404


@pytest.mark.parametrize("raw_total", ["1e309", "-1e309"])
def test_standalone_quota_rejects_overflowing_amount(client, db, seed, raw_total):
    res = client.post(
        f"{API}/condominiums/{seed['condominium'].id}/standalone",
        content='{"title": "X", "total_amount": %s, "duration_months": 3}' % raw_total,
        headers={"Content-Type": "application/json"},
    )
    assert res.status_code == 422
    assert db.query(models.Payment).count() == 0
    assert db.query(models.QuotaSchedule).count() == 0


def test_unexpected_errors_return_500(client, db, seed, monkeypatch):
    from backend.app.api.v1 import quotas_router

    def boom(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(quotas_router, "list_schedule_items", boom)
    monkeypatch.setattr(quotas_router, "set_category_allocation", boom)

    cat = add_category(db, seed["budget"])
    assert client.get(f"{API}/schedules/1/items").status_code == 500
    res = client.put(f"{API}/categories/{cat.id}/allocation", json={"scope": "all"})
    assert res.status_code == 500
