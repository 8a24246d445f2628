import pytest

from app.core.security import create_session_cookie
from app.deps import SESSION_COOKIE_NAME
from app.models.user import User, UserRole, UserStatus

pytestmark = pytest.mark.asyncio


def _login(client, user: User) -> None:
    cookie = create_session_cookie({"user_id": str(user.id), "session_version": user.session_version})
    client.headers["Cookie"] = f"{SESSION_COOKIE_NAME}={cookie}"


async def test_topup_flow_over_http(client, make_user):
    user = await make_user()
    admin = await make_user(role=UserRole.ADMIN)

    _login(client, user)
    r = await client.post("/v1/coins/topups", json={"amount_mvr": "100.00", "slip_ref": "slips/1.jpg"})
    assert r.status_code == 201
    topup = r.json()
    assert topup["status"] == "PENDING"
    assert topup["price_per_coin"] == "10.00"

    r = await client.post(f"/v1/admin/topups/{topup['id']}/approve")
    assert r.status_code == 403

    _login(client, admin)
    r = await client.post(f"/v1/admin/topups/{topup['id']}/approve", json={"note": "slip ok"})
    assert r.status_code == 200
    assert r.json()["computed_coins"] == 10

    r = await client.post(f"/v1/admin/topups/{topup['id']}/approve")
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "INVALID_STATE"
    assert r.json()["error"]["details"] == {"status": "APPROVED"}

    _login(client, user)
    assert (await client.get("/v1/coins/balance")).json() == {"coins": 10}
    ledger = (await client.get("/v1/coins/ledger")).json()
    assert [e["reason"] for e in ledger["entries"]] == ["TOPUP"]
    assert ledger["next_cursor"] is None


async def test_post_without_coins_is_402(client, make_user):
    user = await make_user(coins=1)
    _login(client, user)
    r = await client.post("/v1/posts", json={"description": "Looking for someone kind"})
    assert r.status_code == 402
    assert r.json()["error"] == {
        "message": "Insufficient coins. You need 2 coins but have 1.",
        "code": "INSUFFICIENT_FUNDS",
        "details": {"required": 2, "balance": 1},
    }


async def test_pending_profile_cannot_post(client, make_user):
    user = await make_user(status=UserStatus.PENDING, coins=10)
    _login(client, user)
    r = await client.post("/v1/posts", json={"description": "hello"})
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "NOT_APPROVED"


async def test_post_charges_over_http(client, make_user):
    user = await make_user(coins=10)
    _login(client, user)
    r = await client.post("/v1/posts", json={"title": "Hi", "description": "hello"})
    assert r.status_code == 201
    assert r.json()["coins_spent"] == 2
    assert r.json()["coins"] == 8
    mine = (await client.get("/v1/posts/mine")).json()["posts"]
    assert len(mine) == 1


async def test_stale_session_version_is_rejected(client, make_user):
    user = await make_user()
    cookie = create_session_cookie({"user_id": str(user.id), "session_version": user.session_version + 1})
    client.headers["Cookie"] = f"{SESSION_COOKIE_NAME}={cookie}"
    r = await client.get("/v1/coins/balance")
    assert r.status_code == 401


async def test_settings_seeded_and_editable(client, make_user):
    r = await client.get("/v1/settings")
    assert r.status_code == 200
    assert r.json()["coin_price_mvr"] == "10.00"
    assert r.json()["cost_post"] == 2
    assert r.json()["cost_connect"] == 5

    admin = await make_user(role=UserRole.ADMIN)
    _login(client, admin)
    r = await client.patch("/v1/admin/settings", json={"coin_price_mvr": "12.50", "cost_connect": 3})
    assert r.status_code == 200
    assert r.json()["coin_price_mvr"] == "12.50"
    assert r.json()["cost_connect"] == 3

    r = await client.patch("/v1/admin/settings", json={})
    assert r.status_code == 400

    audits = (await client.get("/v1/admin/audits")).json()
    assert [a["action"] for a in audits["audits"]] == ["SETTINGS_UPDATED"]


async def test_admin_approves_profile(client, make_user):
    pending = await make_user(status=UserStatus.PENDING)
    admin = await make_user(role=UserRole.ADMIN)
    _login(client, admin)
    r = await client.post(f"/v1/admin/users/{pending.id}/approve")
    assert r.status_code == 200
    assert r.json()["status"] == "APPROVED"
    assert (await User.get(pending.id)).status == UserStatus.APPROVED


async def test_admin_lists_pending_profiles(client, make_user):
    first = await make_user(status=UserStatus.PENDING)
    second = await make_user(status=UserStatus.PENDING)
    await make_user(status=UserStatus.REJECTED)
    admin = await make_user(role=UserRole.ADMIN)

    _login(client, admin)
    r = await client.get("/v1/admin/users")
    assert r.status_code == 200
    body = r.json()
    assert body["total"] == 2
    assert [u["id"] for u in body["users"]] == [str(first.id), str(second.id)]
    assert {u["status"] for u in body["users"]} == {"PENDING"}

    r = await client.get("/v1/admin/users", params={"status": "REJECTED", "limit": 1})
    assert r.json()["total"] == 1
    assert r.json()["limit"] == 1

    await client.post(f"/v1/admin/users/{first.id}/approve")
    r = await client.get("/v1/admin/users", params={"status": "PENDING"})
    assert [u["id"] for u in r.json()["users"]] == [str(second.id)]


async def test_profile_queue_is_admin_only(client, make_user):
    user = await make_user()
    _login(client, user)
    r = await client.get("/v1/admin/users")
    assert r.status_code == 403
