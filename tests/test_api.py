import pytest
from httpx import AsyncClient, ASGITransport

from namaste_loyalty.database import get_db
from namaste_loyalty.main import app
from namaste_loyalty.services import ledger
from namaste_loyalty.services.rate_limit import RateLimiter, RateLimitCounterRepository, get_rate_limiter
from namaste_loyalty.utils.checksum import append_checksum

from conftest import auth_headers, create_code, create_reward, create_user

TOKYO = (35.6812, 139.6314)


@pytest.fixture
async def client(session_factory, fake_redis):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    def override_get_rate_limiter():
        return RateLimiter(RateLimitCounterRepository(fake_redis), user_max_attempts=3)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_rate_limiter] = override_get_rate_limiter
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest.mark.anyio
async def test_health(client):
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert "X-Request-ID" in resp.headers


@pytest.mark.anyio
async def test_requires_authentication(client):
    resp = await client.post("/api/v1/codes/redeem", json={"code": "NAMASTE-ABC123H"})
    assert resp.status_code == 401
    assert resp.json()["status"] == "error"

    resp = await client.get("/api/v1/points/balance", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


@pytest.mark.anyio
async def test_redeem_code_flow(client, session_factory):
    async with session_factory() as db:
        user = await create_user(db)
        await create_code(db, "NAMASTE-ABC123H")
    headers = auth_headers(user)

    resp = await client.post("/api/v1/codes/redeem", json={"code": "NAMASTE-ABC123H"}, headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["points_added"] == 5
    assert body["current_points"] == 5

    resp = await client.post("/api/v1/codes/redeem", json={"code": "NAMASTE-ABC123H"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["error_code"] == "ALREADY_USED"

    resp = await client.get("/api/v1/points/history", headers=headers)
    assert resp.status_code == 200
    history = resp.json()
    assert history["total"] == 1
    assert history["transactions"][0]["detail"]["type"] == "delivery_code"

    resp = await client.get("/api/v1/points/balance", headers=headers)
    assert resp.json()["points"] == 5


@pytest.mark.anyio
async def test_redeem_code_rate_limited_returns_429(client, session_factory):
    async with session_factory() as db:
        user = await create_user(db)
    headers = auth_headers(user)

    for suffix in ("0001", "0002", "0003"):
        resp = await client.post(
            "/api/v1/codes/redeem",
            json={"code": append_checksum(f"NAMASTE-EEEE{suffix}")},
            headers=headers,
        )
        assert resp.status_code == 200

    resp = await client.post("/api/v1/codes/redeem", json={"code": "NAMASTE-ABC123H"}, headers=headers)
    assert resp.status_code == 429
    body = resp.json()
    assert body["rate_limited"] is True
    assert body["success"] is False


@pytest.mark.anyio
async def test_qr_check_in(client, session_factory):
    async with session_factory() as db:
        user = await create_user(db)
    headers = auth_headers(user)

    resp = await client.post(
        "/api/v1/checkins/qr",
        json={"qr_code": "NAMASTE-TOKYO-MAIN", "latitude": TOKYO[0] + 0.0018, "longitude": TOKYO[1]},
        headers=headers,
    )
    body = resp.json()
    assert body["success"] is False
    assert body["error_code"] == "OUT_OF_RANGE"
    assert body["distance"] > 100

    resp = await client.post(
        "/api/v1/checkins/qr",
        json={"qr_code": "NAMASTE-TOKYO-MAIN", "latitude": TOKYO[0], "longitude": TOKYO[1]},
        headers=headers,
    )
    assert resp.json()["success"] is True
    assert resp.json()["current_points"] == 1


@pytest.mark.anyio
async def test_reward_redemption_flow(client, session_factory):
    async with session_factory() as db:
        user = await create_user(db, points=15)
        reward = await create_reward(db, points_cost=10)
    headers = auth_headers(user)

    resp = await client.post(f"/api/v1/rewards/{reward.id}/redeem", headers=headers)
    assert resp.status_code == 201
    created = resp.json()
    assert created["points_cost"] == 10
    assert created["current_points"] == 5
    assert created["code"].startswith("RDEM-")

    resp = await client.post(f"/api/v1/rewards/{reward.id}/redeem", json={}, headers=headers)
    assert resp.status_code == 402

    resp = await client.get("/api/v1/redemptions/active", headers=headers)
    active = resp.json()
    assert len(active) == 1
    assert active[0]["state"] == "active"
    assert active[0]["countdown"] in {"15:00", "14:59"}

    redemption_id = created["redemption_id"]
    resp = await client.post(f"/api/v1/redemptions/{redemption_id}/use", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["state"] == "used"
    assert resp.json()["countdown"] is None

    resp = await client.post(f"/api/v1/redemptions/{redemption_id}/use", headers=headers)
    assert resp.status_code == 409

    resp = await client.get("/api/v1/redemptions/active", headers=headers)
    assert resp.json() == []


@pytest.mark.anyio
async def test_reward_errors(client, session_factory):
    async with session_factory() as db:
        user = await create_user(db, points=100)
        other = await create_user(db, points=100)
        reward = await create_reward(db, points_cost=10)
    headers = auth_headers(user)

    resp = await client.post("/api/v1/rewards/missing/redeem", headers=headers)
    assert resp.status_code == 404

    resp = await client.post(
        f"/api/v1/rewards/{reward.id}/redeem",
        json={"category": "direct_order_coupon"},
        headers=headers,
    )
    assert resp.status_code == 400

    resp = await client.post(f"/api/v1/rewards/{reward.id}/redeem", headers=auth_headers(other))
    redemption_id = resp.json()["redemption_id"]

    resp = await client.get(f"/api/v1/redemptions/{redemption_id}", headers=headers)
    assert resp.status_code == 404
    resp = await client.post(f"/api/v1/redemptions/{redemption_id}/use", headers=headers)
    assert resp.status_code == 404


@pytest.mark.anyio
async def test_reward_redeem_losing_race_returns_402(client, session_factory, monkeypatch):
    async with session_factory() as db:
        user = await create_user(db, points=0)
        reward = await create_reward(db, points_cost=10)

    async def balance_before_race(db, user_id):
        return 10

    monkeypatch.setattr(ledger, "get_balance", balance_before_race)
    resp = await client.post(f"/api/v1/rewards/{reward.id}/redeem", headers=auth_headers(user))
    assert resp.status_code == 402
    assert resp.json()["status"] == "error"


@pytest.mark.anyio
async def test_admin_endpoints(client, session_factory):
    async with session_factory() as db:
        admin = await create_user(db, is_admin=True)
        user = await create_user(db)
    admin_headers = auth_headers(admin)

    resp = await client.post("/api/v1/admin/codes/generate", json={"count": 3}, headers=auth_headers(user))
    assert resp.status_code == 403

    resp = await client.post(
        "/api/v1/admin/codes/generate",
        json={"count": 3, "prefix": "PARTY", "points_awarded": 10},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    batch = resp.json()
    assert batch["count"] == 3
    assert batch["points_awarded"] == 10

    resp = await client.get("/api/v1/admin/codes", params={"batch_id": batch["batch_id"]}, headers=admin_headers)
    assert {c["code"] for c in resp.json()} == set(batch["codes"])

    resp = await client.post("/api/v1/admin/codes/generate", json={"count": 1000}, headers=admin_headers)
    assert resp.status_code == 400

    resp = await client.post(f"/api/v1/admin/codes/{batch['codes'][0]}/invalidate", headers=admin_headers)
    assert resp.status_code == 200

    resp = await client.post(
        "/api/v1/codes/redeem", json={"code": batch["codes"][0]}, headers=auth_headers(user)
    )
    assert resp.json()["error_code"] == "EXPIRED"

    resp = await client.post(
        f"/api/v1/admin/users/{user.id}/points",
        json={"delta": 4, "note": "welcome"},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["points"] == 4

    resp = await client.post(f"/api/v1/admin/users/{user.id}/points", json={"delta": -10}, headers=admin_headers)
    assert resp.status_code == 409

    resp = await client.get("/api/v1/admin/failed-attempts", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["total"] == 1
    assert resp.json()["items"][0]["reason"] == "EXPIRED"

    resp = await client.get("/api/v1/admin/alerts", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json() == []
