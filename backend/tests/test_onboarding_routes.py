"""
Tests for /api/onboarding: client lookup and onboarding completion.
"""
import json
from unittest.mock import AsyncMock, patch

import pytest

PENDING_CLIENT = {
    "client_id": "client-1",
    "broker_id": "broker-1",
    "name": "Jane Doe",
    "email": "jane@example.com",
    "onboarding_token": "onb-1",
    "status": "pending",
    "form_type": "quick-life-insurance",
}

ANSWERS = {
    "full_name": "Jane Doe",
    "email": "jane@example.com",
    "phone": "555-0100",
    "date_of_birth": "1990-01-01",
    "address": "1 Main St",
    "height": "5'6\"",
    "weight": "140",
    "smoker": False,
    "coverage_amount": "$250,000",
    "coverage_type": ["Term Life"],
    "beneficiaries": "John Doe (spouse)",
}


@pytest.fixture
def db(mock_db):
    mock_db.clients.find_one = AsyncMock(return_value=dict(PENDING_CLIENT))
    mock_db.brokers.find_one = AsyncMock(return_value={"email": "bob@example.com"})
    return mock_db


class TestGetOnboarding:

    def test_returns_client_record(self, client, db):
        with patch("services.form_link_service.database.get_db", return_value=db):
            r = client.get("/api/onboarding/onb-1")
        assert r.status_code == 200
        record = r.json()["client"]
        assert record["id"] == "client-1"
        assert record["name"] == "Jane Doe"
        assert record["broker_name"] == "bob@example.com"
        assert record["form_type"] == "quick-life-insurance"

    def test_unknown_token_is_404(self, client, mock_db):
        with patch("services.form_link_service.database.get_db", return_value=mock_db):
            r = client.get("/api/onboarding/nope")
        assert r.status_code == 404
        assert r.json() == {"error": "Invalid or expired onboarding link"}

    def test_completed_onboarding_is_400(self, client, db):
        db.clients.find_one = AsyncMock(return_value={**PENDING_CLIENT, "status": "completed"})
        with patch("services.form_link_service.database.get_db", return_value=db):
            r = client.get("/api/onboarding/onb-1")
        assert r.status_code == 400
        assert r.json()["error"] == "This onboarding has already been completed"


class TestSubmitOnboarding:

    def test_completes_onboarding(self, client, db):
        files = [("document_govt_id", ("passport.jpg", b"jpeg", "image/jpeg"))]
        data = {"token": "onb-1", "fieldValues": json.dumps(ANSWERS)}
        with patch("services.form_link_service.database.get_db", return_value=db):
            r = client.post("/api/onboarding/onb-1/submit", data=data, files=files)

        assert r.status_code == 200
        assert r.json()["documentsProcessed"] == 1

        query, update = db.clients.update_one.call_args[0]
        assert query == {"client_id": "client-1"}
        assert update["$set"]["status"] == "completed"
        assert update["$set"]["form_data"]["coverage_type"] == ["Term Life"]
        assert db.documents.insert_one.call_args[0][0]["file_type"] == "image"

    def test_unknown_token_on_submit(self, client, mock_db):
        data = {"token": "nope", "fieldValues": json.dumps(ANSWERS)}
        with patch("services.form_link_service.database.get_db", return_value=mock_db):
            r = client.post("/api/onboarding/nope/submit", data=data)
        assert r.status_code == 404
        assert r.json()["error"] == "Invalid onboarding token"

    def test_incomplete_onboarding_is_rejected(self, client, db):
        data = {"token": "onb-1", "fieldValues": json.dumps({"full_name": "Jane Doe"})}
        with patch("services.form_link_service.database.get_db", return_value=db):
            r = client.post("/api/onboarding/onb-1/submit", data=data)
        assert r.status_code == 400
        db.clients.update_one.assert_not_awaited()
