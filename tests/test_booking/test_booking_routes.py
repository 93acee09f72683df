from datetime import date, timedelta

import pytest

from booking_service import lifecycle


async def create(client, headers, payload, **extra):
    resp = await client.post("/bookings", json=payload(), headers=headers, **extra)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["booking"]


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "message": "Service healthy",
        "data": {"status": "ok", "service": "booking-service"},
    }


@pytest.mark.asyncio
async def test_create_booking(client, auth_headers, customer, payload):
    resp = await client.post("/bookings", json=payload(), headers=auth_headers(customer))

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "Booking created successfully"
    booking = body["data"]["booking"]
    assert booking["status"] == "pending"
    assert booking["customer"] == customer.subject
    assert booking["technician"] is None
    assert len(booking["statusHistory"]) == 1
    assert resp.headers["X-Request-Id"]


@pytest.mark.asyncio
async def test_create_ignores_client_status_and_technician(client, auth_headers, customer, payload):
    body = payload()
    body.update({"status": "completed", "technician": "tech1@example.com", "paymentStatus": "paid"})

    resp = await client.post("/bookings", json=body, headers=auth_headers(customer))

    booking = resp.json()["data"]["booking"]
    assert booking["status"] == "pending"
    assert booking["technician"] is None
    assert booking["paymentStatus"] == "pending"


@pytest.mark.asyncio
async def test_missing_token_is_401(client, payload):
    resp = await client.post("/bookings", json=payload())

    assert resp.status_code == 401
    assert resp.json() == {"success": False, "message": "Missing Bearer token", "data": None}


@pytest.mark.asyncio
async def test_refresh_token_is_not_an_access_token(client, token_for, customer):
    resp = await client.get("/bookings/my", headers={"Authorization": f"Bearer {token_for(customer, 'refresh')}"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_expired_token_is_401(client, token_for, customer):
    token = token_for(customer, expires_delta=timedelta(minutes=-1))
    resp = await client.get("/bookings/my", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_technician_cannot_create(client, auth_headers, technician, payload):
    resp = await client.post("/bookings", json=payload(), headers=auth_headers(technician))
    assert resp.status_code == 403
    assert resp.json()["success"] is False


@pytest.mark.asyncio
async def test_validation_errors_are_400_with_field_message(client, auth_headers, customer, payload):
    body = payload()
    del body["address"]["city"]

    resp = await client.post("/bookings", json=body, headers=auth_headers(customer))

    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert "address.city" in resp.json()["message"]


@pytest.mark.asyncio
async def test_past_preferred_date_rejected(client, auth_headers, customer, payload):
    yesterday = (date.today() - timedelta(days=1)).isoformat()
    resp = await client.post("/bookings", json=payload(preferredDate=yesterday), headers=auth_headers(customer))
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_idempotent_create(client, auth_headers, customer, payload):
    headers = {**auth_headers(customer), "Idempotency-Key": "abc-123"}

    first = await client.post("/bookings", json=payload(), headers=headers)
    second = await client.post("/bookings", json=payload(), headers=headers)

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["data"]["booking"]["bookingId"] == first.json()["data"]["booking"]["bookingId"]

    listing = await client.get("/bookings/my", headers=auth_headers(customer))
    assert listing.json()["data"]["total"] == 1


@pytest.mark.asyncio
async def test_full_lifecycle_over_http(client, auth_headers, customer, technician, payload):
    booking = await create(client, auth_headers(customer), payload)
    bid = booking["bookingId"]
    tech = auth_headers(technician)

    open_jobs = await client.get("/bookings/open", headers=tech)
    assert [b["bookingId"] for b in open_jobs.json()["data"]["bookings"]] == [bid]

    resp = await client.patch(f"/bookings/{bid}/accept", headers=tech)
    assert resp.status_code == 200
    assert resp.json()["data"]["booking"]["technician"] == technician.subject

    resp = await client.patch(f"/bookings/{bid}/start", headers=tech)
    assert resp.json()["data"]["booking"]["status"] == "in_progress"

    resp = await client.patch(f"/bookings/{bid}/complete", json={"finalCost": 1500}, headers=tech)
    booking = resp.json()["data"]["booking"]
    assert booking["status"] == "completed"
    assert booking["finalCost"] == 1500
    assert booking["progress"] == 1.0
    assert [h["status"] for h in booking["statusHistory"]] == ["pending", "assigned", "in_progress", "completed"]

    resp = await client.get(f"/bookings/{bid}", headers=auth_headers(customer))
    assert resp.json()["data"]["booking"]["status"] == "completed"


@pytest.mark.asyncio
async def test_invalid_transition_is_400(client, auth_headers, customer, technician, payload):
    booking = await create(client, auth_headers(customer), payload)

    resp = await client.patch(f"/bookings/{booking['bookingId']}/start", headers=auth_headers(technician))

    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert "pending" in resp.json()["message"]


@pytest.mark.asyncio
async def test_unknown_booking_is_404(client, auth_headers, admin):
    resp = await client.patch("/bookings/nope/admin-cancel", headers=auth_headers(admin))
    assert resp.status_code == 404
    assert resp.json()["message"] == "Booking not found"


@pytest.mark.asyncio
async def test_other_customer_cannot_view(client, auth_headers, customer, other_customer, payload):
    booking = await create(client, auth_headers(customer), payload)

    resp = await client.get(f"/bookings/{booking['bookingId']}", headers=auth_headers(other_customer))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_reject_assignment_requires_reason(client, auth_headers, customer, technician, payload):
    booking = await create(client, auth_headers(customer), payload)
    bid = booking["bookingId"]
    tech = auth_headers(technician)
    await client.patch(f"/bookings/{bid}/accept", headers=tech)

    missing = await client.patch(f"/bookings/{bid}/reject-assignment", json={}, headers=tech)
    assert missing.status_code == 400

    resp = await client.patch(f"/bookings/{bid}/reject-assignment", json={"reason": "Sick"}, headers=tech)
    assert resp.status_code == 200
    assert resp.json()["data"]["booking"]["status"] == "pending"


@pytest.mark.asyncio
async def test_customer_cancel(client, auth_headers, customer, payload):
    booking = await create(client, auth_headers(customer), payload)

    resp = await client.patch(
        f"/bookings/{booking['bookingId']}/cancel",
        json={"reason": "changed my mind"},
        headers=auth_headers(customer),
    )

    booking = resp.json()["data"]["booking"]
    assert booking["status"] == "cancelled"
    assert booking["cancellationReason"] == "changed my mind"


@pytest.mark.asyncio
async def test_admin_endpoints(client, auth_headers, customer, admin, payload):
    booking = await create(client, auth_headers(customer), payload)
    bid = booking["bookingId"]
    ops = auth_headers(admin)

    new_date = (date.today() + timedelta(days=14)).isoformat()
    resp = await client.patch(
        f"/bookings/{bid}/reschedule",
        json={"preferredDate": new_date, "reason": "Part on back order"},
        headers=ops,
    )
    booking = resp.json()["data"]["booking"]
    assert booking["preferredDate"] == new_date
    assert booking["rescheduleCount"] == 1
    [entry] = booking["rescheduleHistory"]
    assert entry["toDate"] == new_date
    assert entry["fromDate"] != new_date
    assert entry["reason"] == "Part on back order"
    assert entry["rescheduledBy"] == admin.subject

    resp = await client.patch(f"/bookings/{bid}/assign", json={"technicianId": "T1"}, headers=ops)
    assert resp.json()["data"]["booking"]["technician"] == "T1"

    resp = await client.get("/bookings", params={"status": "assigned"}, headers=ops)
    data = resp.json()["data"]
    assert data["total"] == 1
    assert data["page"] == 1
    assert data["pages"] == 1

    resp = await client.patch(f"/bookings/{bid}/admin-cancel", headers=ops)
    assert resp.json()["data"]["booking"]["cancellationReason"] == "Cancelled by admin"


@pytest.mark.asyncio
async def test_admin_listing_forbidden_for_customers(client, auth_headers, customer):
    resp = await client.get("/bookings", headers=auth_headers(customer))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_pagination_bounds(client, auth_headers, customer):
    resp = await client.get("/bookings/my", params={"limit": 101}, headers=auth_headers(customer))
    assert resp.status_code == 400

    resp = await client.get("/bookings/my", params={"page": 0}, headers=auth_headers(customer))
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_my_active_and_assigned(client, auth_headers, customer, technician, payload):
    first = await create(client, auth_headers(customer), payload)
    second = await create(client, auth_headers(customer), payload)
    await client.patch(f"/bookings/{first['bookingId']}/accept", headers=auth_headers(technician))

    active = await client.get("/bookings/my/active", headers=auth_headers(customer))
    assert [b["bookingId"] for b in active.json()["data"]["bookings"]] == [
        second["bookingId"],
        first["bookingId"],
    ]

    assigned = await client.get("/bookings/assigned/me", params={"status": "assigned"}, headers=auth_headers(technician))
    assert [b["bookingId"] for b in assigned.json()["data"]["bookings"]] == [first["bookingId"]]


@pytest.mark.asyncio
async def test_unexpected_error_is_500_envelope(client, auth_headers, admin, mocker):
    mocker.patch.object(lifecycle, "find_booking", side_effect=RuntimeError("boom"))

    resp = await client.patch("/bookings/x/admin-cancel", headers=auth_headers(admin))

    assert resp.status_code == 500
    assert resp.json() == {"success": False, "message": "Internal server error", "data": None}
