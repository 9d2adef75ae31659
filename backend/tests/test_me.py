import pytest
from streakly.main import app
from streakly.deps import get_current_user


@pytest.mark.asyncio
async def test_get_me_unauthorized(client):
    """Test GET /v1/me without token."""
    response = await client.get("/v1/me")
    # Should return 401 because of get_current_user dependency
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


@pytest.mark.asyncio
async def test_get_me_success(client):
    """Test GET /v1/me with valid token (mocked user)."""
    mock_user = {
        "id": "00000000-0000-0000-0000-000000000000",
        "email": "runner@example.com",
        "name": "Runner",
        "coins": 120,
        "freeze_tokens": 2,
        "fitbit_access_token": "fitbit-token",
    }

    app.dependency_overrides[get_current_user] = lambda: mock_user

    try:
        response = await client.get("/v1/me", headers={"Authorization": "Bearer fake-token"})

        assert response.status_code == 200
        data = response.json()
        assert data["email"] == "runner@example.com"
        assert data["coins"] == 120
        assert data["freezeTokens"] == 2
        assert data["fitbitConnected"] is True
        assert data["googleFitConnected"] is False
    finally:
        del app.dependency_overrides[get_current_user]


@pytest.mark.asyncio
async def test_buy_freeze_token(client, authed, streak_user):
    authed.users[streak_user["id"]]["coins"] = 250

    response = await client.post("/v1/shop/freeze-token")

    assert response.status_code == 200
    data = response.json()
    assert data == {"price": 100, "coins": 150, "freezeTokens": 1}
    assert authed.users[streak_user["id"]]["freeze_tokens"] == 1
    assert "freeze_token_purchased" in authed.event_types()


@pytest.mark.asyncio
async def test_buy_freeze_token_exact_balance(client, authed, streak_user):
    authed.users[streak_user["id"]]["coins"] = 100

    response = await client.post("/v1/shop/freeze-token")

    assert response.status_code == 200
    assert response.json()["coins"] == 0


@pytest.mark.asyncio
async def test_buy_freeze_token_insufficient_coins(client, authed, streak_user):
    authed.users[streak_user["id"]]["coins"] = 99

    response = await client.post("/v1/shop/freeze-token")

    assert response.status_code == 409
    body = response.json()["error"]
    assert body["code"] == "INSUFFICIENT_COINS"
    assert body["details"] == {"price": 100}
    assert authed.users[streak_user["id"]]["coins"] == 99
    assert authed.users[streak_user["id"]]["freeze_tokens"] == 0
