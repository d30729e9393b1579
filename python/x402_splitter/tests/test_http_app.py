"""Tests for the Starlette application."""

import pytest
from solders.keypair import Keypair
from starlette.testclient import TestClient

from x402_splitter.http import create_app
from x402_splitter.mechanisms.svm.signers import KeypairSigner


def new_address() -> str:
    return str(Keypair().pubkey())


@pytest.fixture
def client(services):
    return TestClient(create_app(services))


@pytest.fixture
def authority():
    return KeypairSigner(Keypair())


@pytest.fixture
def splitter(client, authority, settle):
    """Create and initialize a 70/20/10 splitter through the API."""
    response = client.post(
        "/api/splitter/create",
        json={
            "authority": authority.address,
            "merchant": new_address(),
            "agent": new_address(),
            "platform": new_address(),
            "merchantShare": 70,
            "agentShare": 20,
            "platformShare": 10,
        },
    )
    assert response.status_code == 201
    splitter_id = response.json()["splitterId"]

    init = client.get(f"/api/splitter/{splitter_id}/initialize-tx").json()
    signature = settle(init["transaction"], authority)
    response = client.post(f"/api/splitter/{splitter_id}/initialize", json={"signature": signature})
    assert response.status_code == 200
    return response.json()


@pytest.fixture
def pay(client, settle, payer):
    """Pay for one request through the build endpoint; returns the proof."""

    def _pay(splitter_id, amount=1_000_000):
        response = client.post(
            "/api/payment/build-split-tx",
            json={"splitterId": splitter_id, "payerIdentity": payer.address, "amount": amount},
        )
        assert response.status_code == 200
        return settle(response.json()["transaction"], payer)

    return _pay


class TestSplitterRoutes:
    """Test splitter management endpoints."""

    def test_health(self, client, settings):
        body = client.get("/health").json()

        assert body["status"] == "ok"
        assert body["network"] == settings.network
        assert body["settlementMode"] == "atomic"

    def test_created_splitter_is_ready_after_initialization(self, client, splitter, authority):
        assert splitter["onChainReady"] is True
        assert splitter["authority"] == authority.address

        fetched = client.get(f"/api/splitter/{splitter['splitterId']}").json()
        assert fetched == splitter

    def test_unknown_splitter_is_404(self, client):
        response = client.get(f"/api/splitter/{new_address()}")

        assert response.status_code == 404
        assert response.json()["error"] == "splitter_not_found"

    def test_invalid_json_is_400(self, client):
        response = client.post(
            "/api/splitter/create", content=b"{not json", headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    def test_unknown_field_is_400(self, client, authority):
        response = client.post(
            "/api/splitter/create",
            json={
                "authority": authority.address,
                "merchant": new_address(),
                "agent": new_address(),
                "platform": new_address(),
                "merchantShare": 70,
                "agentShare": 20,
                "platformShare": 10,
                "residualTo": "merchant",
            },
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    def test_invalid_shares_are_400(self, client, authority):
        response = client.post(
            "/api/splitter/create",
            json={
                "authority": authority.address,
                "merchant": new_address(),
                "agent": new_address(),
                "platform": new_address(),
                "merchantShare": 70,
                "agentShare": 20,
                "platformShare": 20,
            },
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_shares"

    def test_duplicate_is_409(self, client, splitter, authority):
        response = client.post(
            "/api/splitter/create",
            json={
                "authority": authority.address,
                "merchant": new_address(),
                "agent": new_address(),
                "platform": new_address(),
                "merchantShare": 50,
                "agentShare": 25,
                "platformShare": 25,
            },
        )

        assert response.status_code == 409

    def test_update_requires_signed_transaction(self, client, splitter, authority, ledger, settle):
        base = f"/api/splitter/{splitter['splitterId']}"
        shares = {"merchantShare": 60, "agentShare": 30, "platformShare": 10}

        unsigned = ledger.add_transaction()
        denied = client.post(
            f"{base}/update", json={"authority": authority.address, "signature": unsigned, **shares}
        )
        built = client.post(f"{base}/update-tx", json=shares).json()
        signature = settle(built["transaction"], authority)
        updated = client.post(
            f"{base}/update", json={"authority": authority.address, "signature": signature, **shares}
        )

        assert denied.status_code == 403
        assert denied.json()["error"] == "not_authority"
        assert built["splitterId"] == splitter["splitterId"]
        assert updated.status_code == 200
        assert updated.json()["merchantShare"] == 60
        assert client.get(base).json()["merchantShare"] == 60

    def test_update_transaction_rejects_invalid_shares(self, client, splitter):
        response = client.post(
            f"/api/splitter/{splitter['splitterId']}/update-tx",
            json={"merchantShare": 60, "agentShare": 30, "platformShare": 30},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_shares"

    def test_lists(self, client, splitter, authority):
        by_authority = client.get(f"/api/splitters/{authority.address}").json()
        everything = client.get("/api/splitters").json()

        assert [s["splitterId"] for s in by_authority] == [splitter["splitterId"]]
        assert len(everything) == 1


class TestBuildRoute:
    """Test the settlement transaction endpoint."""

    def test_build_returns_split_table(self, client, splitter, payer):
        response = client.post(
            "/api/payment/build-split-tx",
            json={"splitterId": splitter["splitterId"], "payerIdentity": payer.address, "amount": 1_000_000},
        )

        body = response.json()
        assert response.status_code == 200
        assert body["mode"] == "atomic"
        assert body["splits"]["merchant"] == {
            "address": splitter["merchant"],
            "amount": 700_000,
            "percentage": 70,
        }
        assert body["splits"]["platform"]["amount"] == 100_000

    def test_build_for_unready_splitter(self, client, authority, payer):
        created = client.post(
            "/api/splitter/create",
            json={
                "authority": authority.address,
                "merchant": new_address(),
                "agent": new_address(),
                "platform": new_address(),
                "merchantShare": 70,
                "agentShare": 20,
                "platformShare": 10,
            },
        ).json()

        response = client.post(
            "/api/payment/build-split-tx",
            json={"splitterId": created["splitterId"], "payerIdentity": payer.address, "amount": 1},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "splitter_not_ready"

    def test_build_rejects_zero_amount(self, client, splitter, payer):
        response = client.post(
            "/api/payment/build-split-tx",
            json={"splitterId": splitter["splitterId"], "payerIdentity": payer.address, "amount": 0},
        )

        assert response.status_code == 400


class TestProtectedResource:
    """Test the payment-gated demo resource."""

    def test_request_without_proof_gets_402(self, client, splitter):
        response = client.post("/api/demo/get-data", json={"splitterId": splitter["splitterId"]})

        assert response.status_code == 402
        body = response.json()
        assert body["protocolVersion"] == 1
        (entry,) = body["accepts"]
        assert entry["payTo"] == splitter["splitterId"]
        assert [r["amount"] for r in entry["recipients"]] == [700_000, 200_000, 100_000]

    def test_paid_request_is_served_then_cached(self, client, splitter, pay, payer):
        proof = pay(splitter["splitterId"])
        headers = {"proof-signature": proof, "payer-identity": payer.address}

        first = client.post("/api/demo/get-data", json={"splitterId": splitter["splitterId"]}, headers=headers)
        second = client.post("/api/demo/get-data", json={"splitterId": splitter["splitterId"]}, headers=headers)

        assert first.status_code == 200
        data = first.json()["data"]
        assert first.json()["cached"] is False
        assert data["paymentSignature"] == proof
        assert data["payment"]["status"] == "confirmed"
        assert data["splits"]["merchant"] == f"70% (0.7 USDC) -> {splitter['merchant']}"
        assert data["demoData"]["analytics"] == {"totalRequests": 1, "totalPayments": 1, "uniquePayers": 1}
        assert second.status_code == 200
        assert second.json()["cached"] is True
        assert second.json()["data"]["demoData"]["analytics"]["totalRequests"] == 1

    def test_underpaid_proof_is_denied(self, client, splitter, pay):
        proof = pay(splitter["splitterId"], amount=1_000)

        response = client.post(
            "/api/demo/get-data",
            json={"splitterId": splitter["splitterId"]},
            headers={"proof-signature": proof},
        )

        assert response.status_code == 402
        body = response.json()
        assert body["error"] == "proof_mismatch"
        assert body["rejectedProof"] == proof
        assert body["retryable"] is False

    def test_unknown_splitter(self, client):
        response = client.post("/api/demo/get-data", json={"splitterId": new_address()})

        assert response.status_code == 404

    def test_history_and_stats(self, client, splitter, pay):
        proof = pay(splitter["splitterId"])
        client.post(
            "/api/demo/get-data",
            json={"splitterId": splitter["splitterId"]},
            headers={"proof-signature": proof},
        )

        history = client.get(f"/api/splitter/{splitter['splitterId']}/payments").json()
        stats = client.get("/api/stats").json()

        assert [p["signature"] for p in history] == [proof]
        assert stats["totalPayments"] == 1
        assert stats["totalVolume"] == 1_000_000
        assert stats["recentPayments"][0]["signature"] == proof

    def test_history_rejects_bad_limit(self, client, splitter):
        response = client.get(f"/api/splitter/{splitter['splitterId']}/payments?limit=zero")

        assert response.status_code == 400
