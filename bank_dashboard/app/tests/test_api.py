import pytest
from fastapi.testclient import TestClient

from ..core.config import get_settings
from ..core.dependencies import get_authority, get_session_registry
from ..core.errors import TransportError
from ..main import app


@pytest.fixture
def client(authority, settings) -> TestClient:
    app.dependency_overrides[get_authority] = lambda: authority
    app.dependency_overrides[get_settings] = lambda: settings

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    get_session_registry().close_all()


def _open(client: TestClient, **body) -> dict:
    response = client.post("/transfer-sessions", json=body or None)
    assert response.status_code == 201
    return response.json()


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_open_session_preselects_accounts(client: TestClient) -> None:
    session = _open(client)

    assert session["step"] == "details"
    assert session["status"] == "idle"
    assert session["draft"]["fromAccountId"] == "acc-a"
    assert session["draft"]["toAccountId"] == "acc-b"
    assert session["canSubmitDetails"] is False
    assert session["disclosure"]["visible"] is False


def test_internal_transfer_flow(client: TestClient, authority) -> None:
    session_id = _open(client)["sessionId"]

    updated = client.patch(
        f"/transfer-sessions/{session_id}/details",
        json={"amount": "50.00", "description": "Savings top-up"},
    )
    assert updated.status_code == 200
    assert updated.json()["canSubmitDetails"] is True

    initiated = client.post(f"/transfer-sessions/{session_id}/initiate")
    assert initiated.status_code == 200
    body = initiated.json()
    assert body["step"] == "otp"
    assert body["disclosure"] == {"code": "111111", "progress": 100, "visible": True}
    assert body["storedIntent"]["toAccountId"] == "acc-b"

    entered = client.put(f"/transfer-sessions/{session_id}/otp", json={"otp": "111111"})
    assert entered.json()["canSubmitOtp"] is True

    executed = client.post(f"/transfer-sessions/{session_id}/execute")
    assert executed.status_code == 200
    assert executed.json()["status"] == "success"
    assert executed.json()["storedIntent"] is None

    accounts = client.get(f"/transfer-sessions/{session_id}/accounts").json()
    balances = {item["_id"]: item["balance"] for item in accounts["items"]}
    assert balances["acc-a"] == "450.00"
    assert balances["acc-b"] == "150.00"
    assert accounts["notice"] == "Transfer completed successfully!"
    assert authority.list_calls == 1


def test_external_transfer_with_wrong_passcode(client: TestClient) -> None:
    session_id = _open(client, transferType="external")["sessionId"]
    client.patch(
        f"/transfer-sessions/{session_id}/details",
        json={"recipientAccountNumber": "12 345 67", "amount": "10.00"},
    )
    client.post(f"/transfer-sessions/{session_id}/initiate")

    response = client.post(f"/transfer-sessions/{session_id}/execute", json={"otp": "000000"})

    body = response.json()
    assert body["step"] == "otp"
    assert body["status"] == "error"
    assert body["enteredOtp"] == "000000"
    assert body["storedIntent"]["recipientAccountNumber"] == "1234567"
    assert body["feedbackMessage"] == "Invalid or expired OTP."


def test_invalid_details_stay_local(client: TestClient, authority) -> None:
    session_id = _open(client)["sessionId"]
    client.patch(f"/transfer-sessions/{session_id}/details", json={"amount": "-5"})

    body = client.post(f"/transfer-sessions/{session_id}/initiate").json()

    assert body["status"] == "error"
    assert body["step"] == "details"
    assert authority.initiate_calls == []


def test_cancel_outside_otp_step_conflicts(client: TestClient) -> None:
    session_id = _open(client)["sessionId"]

    response = client.post(f"/transfer-sessions/{session_id}/cancel")

    assert response.status_code == 409


def test_cancel_returns_to_details(client: TestClient) -> None:
    session_id = _open(client)["sessionId"]
    client.patch(f"/transfer-sessions/{session_id}/details", json={"amount": "5"})
    client.post(f"/transfer-sessions/{session_id}/initiate")

    body = client.post(f"/transfer-sessions/{session_id}/cancel").json()

    assert body["step"] == "details"
    assert body["storedIntent"] is None
    assert body["disclosure"]["visible"] is False
    assert body["feedbackMessage"] == "Transfer cancelled."


def test_refresh_replaces_optimistic_balances(client: TestClient, authority) -> None:
    session_id = _open(client)["sessionId"]

    accounts = client.get(
        f"/transfer-sessions/{session_id}/accounts", params={"refresh": True}
    ).json()

    assert len(accounts["items"]) == 3
    assert authority.list_calls == 2


def test_unknown_session_returns_404(client: TestClient) -> None:
    response = client.get("/transfer-sessions/00000000-0000-0000-0000-000000000000")

    assert response.status_code == 404


def test_closed_session_is_gone(client: TestClient) -> None:
    session_id = _open(client)["sessionId"]

    assert client.delete(f"/transfer-sessions/{session_id}").status_code == 204
    assert client.get(f"/transfer-sessions/{session_id}").status_code == 404


def test_unreachable_authority_returns_503(client: TestClient, authority) -> None:
    async def unreachable():
        raise TransportError("Network error: Could not connect to the server.")

    authority.list_accounts = unreachable

    response = client.post("/transfer-sessions")

    assert response.status_code == 503
    assert response.json()["detail"] == "Network error: Could not connect to the server."
