from datetime import datetime, timedelta, timezone
from decimal import Decimal
import uuid

PASSWORD = "Pharmacy123"

API = "/api"


async def create_medicine(client, headers, **overrides):
    payload = {
        "name": "Paracetamol 500mg",
        "genericName": "Paracetamol",
        "quantity": 100,
        "buyPrice": "5.00",
        "sellingPrice": "10.00",
    }
    payload.update(overrides)
    response = await client.post(f"{API}/medicines", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


# ---------- System ----------

async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "X-Request-ID" in response.headers


async def test_unknown_route_uses_error_body(client):
    response = await client.get(f"{API}/nothing-here")
    assert response.status_code == 404
    body = response.json()
    assert body["error"] == "http_error"
    assert body["request_id"]


# ---------- Auth ----------

async def test_login_and_me(client, ipp_user):
    response = await client.post(
        f"{API}/auth/login", json={"email": ipp_user.email, "password": PASSWORD}
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["expires_in"] == 1440 * 60
    assert body["user"]["role"] == "ipp"

    response = await client.get(
        f"{API}/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"}
    )
    assert response.status_code == 200
    assert response.json()["email"] == ipp_user.email
    assert response.json()["isActive"] is True


async def test_login_with_wrong_password(client, ipp_user):
    response = await client.post(
        f"{API}/auth/login", json={"email": ipp_user.email, "password": "Wrong1234"}
    )
    assert response.status_code == 401
    assert response.json()["error"] == "unauthorized"


async def test_requests_need_a_token(client):
    response = await client.get(f"{API}/medicines")
    assert response.status_code == 401
    body = response.json()
    assert body["error"] == "unauthorized"
    assert body["detail"] == "Not authenticated"
    assert "request_id" in body
    assert response.headers["WWW-Authenticate"] == "Bearer"

    response = await client.get(
        f"{API}/medicines", headers={"Authorization": "Bearer not-a-token"}
    )
    assert response.status_code == 401


# ---------- Medicines ----------

async def test_medicine_crud(client, store_officer, auth_headers):
    headers = auth_headers(store_officer)
    created = await create_medicine(client, headers, barcode="6001234567890")

    assert created["name"] == "Paracetamol 500mg"
    assert created["packageType"] == "Tablet"
    assert created["lowStockThreshold"] == 50
    assert Decimal(created["totalPrice"]) == Decimal("500.00")

    response = await client.get(f"{API}/medicines/{created['id']}", headers=headers)
    assert response.status_code == 200

    response = await client.get(f"{API}/medicines/search", params={"q": "6001"}, headers=headers)
    assert response.json()["total"] == 1

    response = await client.put(
        f"{API}/medicines/{created['id']}", json={"quantity": 20}, headers=headers
    )
    assert response.status_code == 200
    assert Decimal(response.json()["totalPrice"]) == Decimal("100.00")

    response = await client.delete(f"{API}/medicines/{created['id']}", headers=headers)
    assert response.status_code == 204

    response = await client.get(f"{API}/medicines/{created['id']}", headers=headers)
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


async def test_delegated_roles_cannot_manage_medicines(client, ipp_user, auth_headers):
    response = await client.post(
        f"{API}/medicines",
        json={"name": "Paracetamol 500mg", "quantity": 10},
        headers=auth_headers(ipp_user),
    )
    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"


async def test_invalid_payload_is_a_422(client, store_officer, auth_headers):
    response = await client.post(
        f"{API}/medicines",
        json={"name": "", "quantity": -1},
        headers=auth_headers(store_officer),
    )
    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "request_validation_error"
    assert body["errors"]


async def test_medicine_alerts(client, store_officer, auth_headers):
    headers = auth_headers(store_officer)
    yesterday = (datetime.now(timezone.utc).date() - timedelta(days=1)).isoformat()
    await create_medicine(client, headers, name="Expired syrup", expiryDate=yesterday)
    await create_medicine(client, headers, name="Empty shelf", quantity=0)
    await create_medicine(client, headers, name="Nearly out", quantity=3)

    response = await client.get(f"{API}/medicines/notifications/all", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert [m["name"] for m in body["expired"]] == ["Expired syrup"]
    assert [m["name"] for m in body["outOfStock"]] == ["Empty shelf"]
    assert [m["name"] for m in body["lowStock"]] == ["Nearly out"]
    assert body["total"] == 3


# ---------- Delegations, sales and returns ----------

async def test_delegate_sell_and_return_over_http(
    client, store_officer, ipp_user, auth_headers
):
    store = auth_headers(store_officer)
    ipp = auth_headers(ipp_user)
    medicine = await create_medicine(client, store)

    response = await client.post(
        f"{API}/delegations",
        json={"medicineId": medicine["id"], "quantity": 30, "delegatedTo": "ipp"},
        headers={**store, "Idempotency-Key": "deleg-1"},
    )
    assert response.status_code == 201, response.text
    delegation = response.json()
    assert delegation["remainingQuantity"] == 30
    assert delegation["originalQuantity"] == 30

    # Retried with the same key: same delegation, stock moved once
    response = await client.post(
        f"{API}/delegations",
        json={"medicineId": medicine["id"], "quantity": 30, "delegatedTo": "ipp"},
        headers={**store, "Idempotency-Key": "deleg-1"},
    )
    assert response.json()["id"] == delegation["id"]

    response = await client.get(f"{API}/medicines/{medicine['id']}", headers=store)
    assert response.json()["quantity"] == 70

    response = await client.get(f"{API}/delegations/notifications/all", headers=ipp)
    assert response.json()["unreadCount"] == 1

    response = await client.post(
        f"{API}/sales",
        json={
            "patientName": "Ama Mensah",
            "unit": "NHIS",
            "medicines": [
                {"medicineId": medicine["id"], "quantity": 10, "sellingPrice": "10.00"}
            ],
        },
        headers=ipp,
    )
    assert response.status_code == 201, response.text
    checkout = response.json()
    assert Decimal(checkout["subtotal"]) == Decimal("100.00")
    assert Decimal(checkout["totalAmount"]) == Decimal("90.00")
    sale = checkout["sales"][0]
    assert sale["status"] == "completed"
    assert sale["soldByRole"] == "ipp"

    response = await client.get(f"{API}/delegations/{delegation['id']}", headers=store)
    assert response.json()["remainingQuantity"] == 20

    response = await client.get(f"{API}/sales/{sale['id']}", headers=store)
    assert response.json()["allocations"] == [
        {"delegationId": delegation["id"], "quantity": 10, "returnedQuantity": 0}
    ]

    response = await client.post(
        f"{API}/returns",
        json={
            "saleId": sale["id"],
            "patientName": "Ama Mensah",
            "medicines": [{"medicineId": medicine["id"], "quantityReturned": 10}],
            "totalReturned": 0,
            "totalOriginal": 0,
            "isFullReturn": False,
        },
        headers=ipp,
    )
    assert response.status_code == 201, response.text
    sales_return = response.json()
    assert sales_return["isFullReturn"] is True
    assert Decimal(sales_return["totalReturned"]) == Decimal("90.00")
    assert len(sales_return["items"]) == 1

    response = await client.get(f"{API}/sales/{sale['id']}", headers=store)
    assert response.json()["status"] == "returned"

    response = await client.get(
        f"{API}/delegations", params={"delegatedTo": "ipp"}, headers=store
    )
    assert response.json()["items"][0]["remainingQuantity"] == 30

    response = await client.get(f"{API}/returns", headers=store)
    assert response.json()["total"] == 1
    assert response.json()["items"][0]["items"][0]["quantityReturned"] == 10

    response = await client.delete(f"{API}/returns/{sales_return['id']}", headers=store)
    assert response.status_code == 204

    response = await client.get(f"{API}/sales/{sale['id']}", headers=store)
    assert response.json()["status"] == "completed"
    assert response.json()["returnedQuantity"] == 0


async def test_insufficient_stock_error_body(client, store_officer, auth_headers):
    headers = auth_headers(store_officer)
    medicine = await create_medicine(client, headers)

    response = await client.post(
        f"{API}/delegations",
        json={"medicineId": medicine["id"], "quantity": 150, "delegatedTo": "dispensary"},
        headers=headers,
    )
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "insufficient_stock"
    assert body["available"] == 100
    assert body["requested"] == 150

    response = await client.get(f"{API}/delegations", headers=headers)
    assert response.json()["total"] == 0


async def test_over_return_error_body(client, store_officer, auth_headers):
    headers = auth_headers(store_officer)
    medicine = await create_medicine(client, headers)

    response = await client.post(
        f"{API}/sales",
        json={
            "patientName": "Kwame Nkrumah",
            "discount": 0,
            "medicines": [{"medicineId": medicine["id"], "quantity": 2, "sellingPrice": "10"}],
        },
        headers=headers,
    )
    sale = response.json()["sales"][0]

    response = await client.post(
        f"{API}/returns",
        json={
            "saleId": sale["id"],
            "patientName": "Kwame Nkrumah",
            "medicines": [{"medicineId": medicine["id"], "quantityReturned": 3}],
        },
        headers=headers,
    )
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "over_return"
    assert body["outstanding"] == 2
    assert body["requested"] == 3


async def test_sales_list_totals(client, store_officer, auth_headers):
    headers = auth_headers(store_officer)
    medicine = await create_medicine(client, headers)

    for quantity in (1, 2):
        await client.post(
            f"{API}/sales",
            json={
                "patientName": "Abena Ofori",
                "discount": 0,
                "medicines": [
                    {"medicineId": medicine["id"], "quantity": quantity, "sellingPrice": "10"}
                ],
            },
            headers=headers,
        )

    today = datetime.now(timezone.utc).date()
    response = await client.get(
        f"{API}/sales",
        params={
            "dateFrom": (today - timedelta(days=1)).isoformat(),
            "dateTo": (today + timedelta(days=1)).isoformat(),
        },
        headers=headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert Decimal(body["totals"]["revenue"]) == Decimal("30.00")
    assert body["totals"]["itemsSold"] == 3
    assert body["totals"]["txCount"] == 2

    # Central sales draw on no delegation
    response = await client.get(f"{API}/sales/{body['items'][0]['id']}", headers=headers)
    assert response.json()["allocations"] == []


async def test_restore_endpoint(client, store_officer, ipp_user, auth_headers):
    store = auth_headers(store_officer)
    ipp = auth_headers(ipp_user)
    medicine = await create_medicine(client, store)

    response = await client.post(
        f"{API}/delegations",
        json={"medicineId": medicine["id"], "quantity": 10, "delegatedTo": "ipp"},
        headers=store,
    )
    delegation = response.json()

    await client.post(
        f"{API}/sales",
        json={
            "patientName": "Akosua Addo",
            "medicines": [{"medicineId": medicine["id"], "quantity": 4, "sellingPrice": "10"}],
        },
        headers=ipp,
    )

    response = await client.post(
        f"{API}/delegations/restore",
        json={"medicines": [{"medicineId": medicine["id"], "quantity": 4}]},
        headers=ipp,
    )
    assert response.status_code == 200, response.text
    assert response.json()["totalRestored"] == 4

    response = await client.get(f"{API}/delegations/{delegation['id']}", headers=store)
    assert response.json()["remainingQuantity"] == 10


async def test_notifications_mark_read(client, store_officer, dispensary_user, auth_headers):
    store = auth_headers(store_officer)
    dispensary = auth_headers(dispensary_user)
    medicine = await create_medicine(client, store)

    for _ in range(2):
        await client.post(
            f"{API}/delegations",
            json={"medicineId": medicine["id"], "quantity": 5, "delegatedTo": "dispensary"},
            headers=store,
        )

    inbox = (await client.get(f"{API}/delegations/notifications/all", headers=dispensary)).json()
    assert inbox["unreadCount"] == 2

    response = await client.post(
        f"{API}/delegations/notifications/mark-read",
        json={"notificationId": inbox["notifications"][0]["id"]},
        headers=dispensary,
    )
    assert response.json()["updated"] == 1

    response = await client.post(
        f"{API}/delegations/notifications/mark-all-read", headers=dispensary
    )
    assert response.json()["updated"] == 1

    inbox = (await client.get(f"{API}/delegations/notifications/all", headers=dispensary)).json()
    assert inbox["unreadCount"] == 0

    response = await client.post(
        f"{API}/delegations/notifications/mark-read",
        json={"notificationId": str(uuid.uuid4())},
        headers=dispensary,
    )
    assert response.status_code == 404


async def test_dashboard_stats(client, store_officer, ipp_user, auth_headers):
    store = auth_headers(store_officer)
    ipp = auth_headers(ipp_user)
    medicine = await create_medicine(client, store)
    await create_medicine(client, store, name="Empty shelf", quantity=0)

    await client.post(
        f"{API}/delegations",
        json={"medicineId": medicine["id"], "quantity": 20, "delegatedTo": "ipp"},
        headers=store,
    )
    await client.post(
        f"{API}/sales",
        json={
            "patientName": "Esi Quaye",
            "discount": 0,
            "medicines": [{"medicineId": medicine["id"], "quantity": 5, "sellingPrice": "10"}],
        },
        headers=ipp,
    )
    await client.post(
        f"{API}/sales",
        json={
            "patientName": "Esi Quaye",
            "discount": 0,
            "medicines": [{"medicineId": medicine["id"], "quantity": 2, "sellingPrice": "10"}],
        },
        headers=store,
    )

    response = await client.get(f"{API}/dashboard/stats", headers=ipp)
    assert response.status_code == 200
    body = response.json()
    assert body["role"] == "ipp"
    assert body["unitsInStock"] == 15
    assert body["activeDelegations"] == 1
    assert Decimal(body["todaySales"]) == Decimal("50.00")
    assert body["todayTransactions"] == 1
    assert len(body["weeklySales"]) == 7

    response = await client.get(f"{API}/dashboard/stats", headers=store)
    body = response.json()
    assert body["totalMedicines"] == 2
    assert body["outOfStock"] == 1
    assert Decimal(body["todaySales"]) == Decimal("70.00")
    assert body["todayTransactions"] == 2


async def test_openapi_documents_bearer_auth(client):
    response = await client.get("/openapi.json")
    assert response.status_code == 200
    schema = response.json()
    assert "BearerAuth" in schema["components"]["securitySchemes"]
    assert "ErrorResponse" in schema["components"]["schemas"]
