"""API integration tests for the settlement endpoints."""

from __future__ import annotations

from datetime import date

ADMIN = {"X-Principal-Id": "admin-1", "X-Principal-Role": "admin"}


def test_settlements_are_admin_only(client):
    response = client.get(
        "/api/v1/settlements",
        headers={"X-Principal-Id": "payer-1", "X-Principal-Role": "payer"},
    )
    assert response.status_code == 403


def test_compute_empty_period(client, make_merchant):
    merchant = make_merchant()
    response = client.post(
        "/api/v1/settlements/compute",
        json={
            "merchant_id": str(merchant.id),
            "period_start": "2024-03-01",
            "period_end": "2024-03-07",
        },
        headers=ADMIN,
    )
    assert response.status_code == 201
    assert response.json()["order_count"] == 0
    assert response.json()["payable_total"] == 0


def test_compute_with_reversed_period(client, make_merchant):
    merchant = make_merchant()
    response = client.post(
        "/api/v1/settlements/compute",
        json={
            "merchant_id": str(merchant.id),
            "period_start": "2024-03-07",
            "period_end": "2024-03-01",
        },
        headers=ADMIN,
    )
    assert response.status_code == 400


def test_list_and_get(client, make_merchant, pay_bill, now):
    merchant = make_merchant()
    pay_bill(merchant, 54000, paid_at=now)
    created = client.post(
        "/api/v1/settlements/compute",
        json={
            "merchant_id": str(merchant.id),
            "period_start": str(now.date()),
            "period_end": str(now.date()),
        },
        headers=ADMIN,
    ).json()

    listed = client.get(
        "/api/v1/settlements", params={"merchant_id": str(merchant.id)}, headers=ADMIN
    ).json()
    assert [s["id"] for s in listed] == [created["id"]]

    fetched = client.get(f"/api/v1/settlements/{created['id']}", headers=ADMIN)
    assert fetched.status_code == 200
    assert fetched.json()["payable_total"] == 50760 - 540


def test_get_unknown_settlement(client):
    response = client.get(
        "/api/v1/settlements/00000000-0000-0000-0000-000000000000", headers=ADMIN
    )
    assert response.status_code == 404


def test_async_run_and_job_lookup(client):
    from qrpay.services.settlement import batch

    batch._jobs.clear()
    today = str(date.today())
    submitted = client.post(
        "/api/v1/settlements/run-async",
        json={"period_start": today, "period_end": today},
        headers=ADMIN,
    )
    assert submitted.status_code == 200
    job_id = submitted.json()["job_id"]

    job = client.get(f"/api/v1/settlements/jobs/{job_id}", headers=ADMIN)
    assert job.status_code == 200
    assert job.json()["status"] in ("pending", "running", "completed")

    jobs = client.get("/api/v1/settlements/jobs", headers=ADMIN).json()["jobs"]
    assert job_id in [j["job_id"] for j in jobs]

    assert client.get("/api/v1/settlements/jobs/nope", headers=ADMIN).status_code == 404
    batch._jobs.clear()
