"""Tests for the trade REST API.

The app is built without running its lifespan; the escrow service dependency
is overridden with one backed by the in-memory repository and registry.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from nft_escrow.api.deps import get_escrow_service
from nft_escrow.api.middleware import status_for
from nft_escrow.domain.exceptions import (
    EscrowIntegrityError,
    InvalidTradeTermsError,
    ItemNotOwnedError,
    OnlyOwnerCanCancelError,
    TradeNotFoundError,
)
from nft_escrow.main import create_app

PUNKS = "0xPunks"
APES = "0xApes"


@pytest.fixture
def client(service) -> TestClient:
    app = create_app()
    app.dependency_overrides[get_escrow_service] = lambda: service
    return TestClient(app)


def _create(client: TestClient, alice: str, bob: str) -> dict:
    response = client.post(
        "/api/v1/trades",
        headers={"X-Caller-Address": alice},
        json={
            "trade_id": "T1",
            "party_a": alice,
            "party_b": bob,
            "required_from_a": [
                {"collection": PUNKS, "item_id": "1"},
                {"collection": PUNKS, "item_id": "2"},
            ],
            "required_from_b": [{"collection": APES, "item_id": "3"}],
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestTradeLifecycle:
    def test_create(self, client, alice, bob) -> None:
        body = _create(client, alice, bob)
        assert body["id"] == "T1"
        assert body["status"] == "PENDING"
        assert body["originator"] == alice
        assert body["is_closed"] is False

    def test_deposit_and_settle(self, client, registry, alice, bob) -> None:
        _create(client, alice, bob)
        r = client.post(
            "/api/v1/trades/T1/deposit",
            headers={"X-Caller-Address": alice},
            json={"collection": PUNKS, "item_ids": ["1", "2"]},
        )
        assert r.status_code == 200
        assert r.json()["is_a_deposited"] is True

        r = client.post("/api/v1/trades/T1/deposit-all", headers={"X-Caller-Address": bob}, json={})
        assert r.status_code == 200
        assert r.json()["status"] == "SETTLED"

        events = client.get("/api/v1/trades/T1/events").json()
        assert [e["event_type"] for e in events][-1] == "TRADE_SUCCESS"

    def test_cancel(self, client, alice, bob) -> None:
        _create(client, alice, bob)
        r = client.post("/api/v1/trades/T1/cancel", headers={"X-Caller-Address": bob})
        assert r.status_code == 200
        assert r.json()["is_b_cancelled"] is True

        status = client.get("/api/v1/trades/T1/status").json()
        assert status["status"] == "CANCELLED"
        assert status["allowed_events"] == []


class TestReads:
    def test_required_items(self, client, alice, bob) -> None:
        _create(client, alice, bob)
        body = client.get(f"/api/v1/trades/T1/required/{bob}").json()
        assert body["items"] == [{"collection": APES, "item_id": "3"}]

    def test_party_trades(self, client, alice, bob) -> None:
        _create(client, alice, bob)
        body = client.get(f"/api/v1/parties/{alice}/trades").json()
        assert body == {"identity": alice, "trade_ids": ["T1"]}


class TestErrors:
    def test_unknown_trade(self, client) -> None:
        r = client.get("/api/v1/trades/missing")
        assert r.status_code == 404
        assert r.json()["error"] == "TRADE_NOT_FOUND"

    def test_missing_caller_header(self, client) -> None:
        r = client.post("/api/v1/trades/T1/settle")
        assert r.status_code == 422

    def test_stranger(self, client, alice, bob, carol) -> None:
        _create(client, alice, bob)
        r = client.post("/api/v1/trades/T1/cancel", headers={"X-Caller-Address": carol})
        assert r.status_code == 403
        assert r.json()["error"] == "UNAUTHORIZED_CALLER"

    def test_duplicate(self, client, alice, bob) -> None:
        _create(client, alice, bob)
        r = client.post(
            "/api/v1/trades",
            headers={"X-Caller-Address": alice},
            json={
                "trade_id": "T1",
                "party_a": alice,
                "party_b": bob,
                "required_from_a": [{"collection": PUNKS, "item_id": "1"}],
            },
        )
        assert r.status_code == 409
        assert r.json()["error"] == "DUPLICATE_TRADE"

    def test_empty_deposit_rejected_by_schema(self, client, alice, bob) -> None:
        _create(client, alice, bob)
        r = client.post(
            "/api/v1/trades/T1/deposit",
            headers={"X-Caller-Address": alice},
            json={"collection": PUNKS, "item_ids": []},
        )
        assert r.status_code == 422

    @pytest.mark.parametrize(
        ("exc", "expected"),
        [
            (TradeNotFoundError("T1"), 404),
            (OnlyOwnerCanCancelError("0xB"), 403),
            (ItemNotOwnedError("0xPunks#1", "0xA"), 422),
            (EscrowIntegrityError("lost custody"), 502),
            (InvalidTradeTermsError("bad"), 400),
        ],
    )
    def test_status_mapping(self, exc, expected: int) -> None:
        assert status_for(exc) == expected
