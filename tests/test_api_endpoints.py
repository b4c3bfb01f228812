"""
API tests for authentication, the pattern workflow, extraction and the ledger.
"""
import pytest
from fastapi.testclient import TestClient

from main import app
from smsledger.core.auth import create_access_token
from smsledger.models.extraction import NO_PATTERN_MESSAGE
from smsledger.services.metrics import reset_metrics

EXPRESSION = r"Rs\.?(?<amount>\d+(\.\d{2})?) (?<msgType>debited)"
SAMPLE = "Rs.500 debited from A/c XX1234"


def _headers(user_id, username, role):
    return {"Authorization": f"Bearer {create_access_token(user_id, username, role)}"}


@pytest.fixture()
def client(db):
    return TestClient(app)


@pytest.fixture()
def headers():
    return {
        "maker": _headers(1, "maker", "MAKER"),
        "checker": _headers(3, "checker", "CHECKER"),
        "user": _headers(5, "user", "USER"),
        "admin": _headers(9, "admin", "ADMIN"),
    }


def _approved_pattern(client, headers, **fields):
    body = {"expression": EXPRESSION, "sample_text": SAMPLE, "status": "PENDING", "bank_name": "SBI"}
    body.update(fields)
    created = client.post("/pattern", json=body, headers=headers["maker"])
    assert created.status_code == 201
    pattern_id = created.json()["pattern_id"]
    approved = client.post(f"/pattern/{pattern_id}/approve", json={"comment": "ok"}, headers=headers["checker"])
    assert approved.status_code == 200
    return approved.json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


class TestAuth:
    def test_signup_and_login(self, client):
        signup = client.post("/auth/signup", json={"username": "asha", "password": "secret123"})
        assert signup.status_code == 201
        assert signup.json()["role"] == "USER"
        assert signup.json()["access_token"]

        duplicate = client.post("/auth/signup", json={"username": "asha", "password": "secret123"})
        assert duplicate.status_code == 409

        login = client.post("/auth/login", json={"username": "asha", "password": "secret123"})
        assert login.status_code == 200
        token = login.json()["access_token"]
        listing = client.get("/transaction", headers={"Authorization": f"Bearer {token}"})
        assert listing.status_code == 200

        bad = client.post("/auth/login", json={"username": "asha", "password": "wrong-password"})
        assert bad.status_code == 401

    def test_missing_and_invalid_tokens(self, client):
        assert client.get("/pattern").status_code == 401
        assert client.get("/pattern", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401

    def test_role_gates(self, client, headers):
        assert client.get("/pattern", headers=headers["user"]).status_code == 403
        assert client.post("/extract", json={"sms_title": "SBI", "sms_text": "x"}, headers=headers["maker"]).status_code == 403
        assert client.get("/admin/users", headers=headers["checker"]).status_code == 403


class TestPatternWorkflow:
    def test_try_expression(self, client, headers):
        response = client.post(
            "/pattern/test",
            json={"expression": r"Rs\.?(?<amount>\d+(\.\d{2})?)", "sample_text": "Rs.500 debited", "bank_name": "SBI"},
            headers=headers["maker"],
        )
        assert response.status_code == 200
        body = response.json()
        assert body["matched"] is True
        assert body["amount"] == "500.00"
        assert body["bank_name"] == "SBI"
        assert body["parsed_bank_name"] is False

    def test_malformed_expression_is_a_client_error(self, client, headers):
        response = client.post(
            "/pattern/test",
            json={"expression": r"(?<amount>\d+", "sample_text": "Rs.500"},
            headers=headers["checker"],
        )
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_EXPRESSION"

    def test_review_and_history(self, client, headers):
        approved = _approved_pattern(client, headers)
        assert approved["status"] == "APPROVED"
        assert approved["reviewer_id"] == 3

        again = client.post(f"/pattern/{approved['pattern_id']}/reject", headers=headers["checker"])
        assert again.status_code == 409
        assert again.json()["error"] == "INVALID_TRANSITION"

        history = client.get(f"/pattern/{approved['pattern_id']}/history", headers=headers["checker"])
        assert [e["action"] for e in history.json()] == ["create", "approve"]

    def test_makers_cannot_review(self, client, headers):
        created = client.post(
            "/pattern",
            json={"expression": EXPRESSION, "sample_text": SAMPLE, "status": "PENDING"},
            headers=headers["maker"],
        )
        response = client.post(f"/pattern/{created.json()['pattern_id']}/approve", headers=headers["maker"])
        assert response.status_code == 403

    def test_reject_then_resubmit(self, client, headers):
        created = client.post(
            "/pattern",
            json={"expression": EXPRESSION, "sample_text": SAMPLE, "status": "PENDING"},
            headers=headers["maker"],
        ).json()
        pattern_id = created["pattern_id"]

        rejected = client.post(f"/pattern/{pattern_id}/reject", json={"comment": "add bank"}, headers=headers["checker"])
        assert rejected.json()["status"] == "REJECTED"

        other = _headers(2, "maker2", "MAKER")
        assert client.put(f"/pattern/{pattern_id}/resubmit", json={}, headers=other).status_code == 403

        resubmitted = client.put(
            f"/pattern/{pattern_id}/resubmit", json={"bank_name": "SBI"}, headers=headers["maker"]
        )
        assert resubmitted.status_code == 200
        assert resubmitted.json()["status"] == "PENDING"
        assert resubmitted.json()["review_comment"] is None

    def test_validation_run_marks_failed(self, client, headers):
        created = client.post(
            "/pattern",
            json={"expression": EXPRESSION, "sample_text": SAMPLE, "status": "PENDING"},
            headers=headers["maker"],
        ).json()

        response = client.post(
            f"/pattern/{created['pattern_id']}/validate",
            json={"samples": ["INR 20 credited", "hello"]},
            headers=headers["checker"],
        )
        assert response.status_code == 200
        body = response.json()
        assert body["marked_failed"] is True
        assert body["status"] == "FAILED"
        assert body["report"]["failed_count"] == 2


class TestExtraction:
    def test_extract_save_and_summarize(self, client, headers):
        pattern = _approved_pattern(client, headers, sender_title="SBIINB")

        extracted = client.post(
            "/extract", json={"sms_title": "VM-SBIINB", "sms_text": SAMPLE}, headers=headers["user"]
        )
        assert extracted.status_code == 200
        result = extracted.json()
        assert result["matched"] is True
        assert result["pattern_id"] == pattern["pattern_id"]
        assert result["amount"] == "500.00"
        assert result["message_type"] == "DEBITED"

        saved = client.post("/transaction", json={**result, "sms_text": SAMPLE}, headers=headers["user"])
        assert saved.status_code == 201
        assert saved.json()["raw_message"] == SAMPLE

        summary = client.get("/transaction/summary", headers=headers["user"]).json()
        assert summary["count"] == 1
        assert summary["debit_total"] == "500.00"

    def test_unmatched_sms_is_captured_for_makers(self, client, headers):
        response = client.post(
            "/extract", json={"sms_title": "AD-NEWBNK", "sms_text": "Spent 42 at cafe"}, headers=headers["user"]
        )
        assert response.status_code == 200
        assert response.json()["matched"] is False
        assert response.json()["message"] == NO_PATTERN_MESSAGE

        failed = client.get("/pattern", params={"status": "FAILED"}, headers=headers["maker"]).json()
        assert [p["sample_text"] for p in failed] == ["Spent 42 at cafe"]
        assert failed[0]["owner_id"] is None

    def test_bulk(self, client, headers):
        _approved_pattern(client, headers, sender_title="SBIINB")

        response = client.post(
            "/extract/bulk",
            json={
                "items": [
                    {"sms_title": "VM-SBIINB", "sms_text": "Rs.10 debited"},
                    {"smsTitle": "VM-SBIINB"},
                    {"sms_title": "VM-SBIINB", "sms": "Rs.20.50 debited"},
                ]
            },
            headers=headers["user"],
        )
        assert response.status_code == 200
        body = response.json()
        assert body["total_count"] == 3
        assert body["success_count"] == 2
        assert [r["index"] for r in body["results"]] == [0, 1, 2]
        assert body["results"][1]["message"] == "sms_text is required"
        assert body["results"][2]["amount"] == "20.50"

    def test_bulk_malformed_items_fail_alone(self, client, headers):
        _approved_pattern(client, headers, sender_title="SBIINB")

        response = client.post(
            "/extract/bulk",
            json={"items": [{"smsTitle": "VM-SBIINB", "sms": "Rs.5 debited"}, {"smsTitle": 123, "sms": 456}, None]},
            headers=headers["user"],
        )
        assert response.status_code == 200
        body = response.json()
        assert body["total_count"] == 3
        assert body["success_count"] == 1
        assert [r["index"] for r in body["results"]] == [0, 1, 2]
        assert body["results"][0]["amount"] == "5.00"
        assert [r["error_kind"] for r in body["results"][1:]] == ["invalid_item", "invalid_item"]
        assert body["results"][1]["message"] == "sms_title, sms_text must be text"

    def test_extract_accepts_camel_case_fields(self, client, headers):
        _approved_pattern(client, headers, sender_title="SBIINB")

        for body in ({"smsTitle": "VM-SBIINB", "smsText": SAMPLE}, {"smsTitle": "VM-SBIINB", "sms": SAMPLE}):
            response = client.post("/extract", json=body, headers=headers["user"])
            assert response.status_code == 200
            assert response.json()["matched"] is True
            assert response.json()["amount"] == "500.00"

    def test_unmatched_result_cannot_be_saved(self, client, headers):
        response = client.post(
            "/transaction", json={"matched": False, "sms_text": "hello"}, headers=headers["user"]
        )
        assert response.status_code == 400


class TestAdmin:
    def test_user_management(self, client, headers):
        created = client.post(
            "/admin/users",
            json={"username": "checker-two", "password": "secret123", "role": "CHECKER"},
            headers=headers["admin"],
        )
        assert created.status_code == 201
        user_id = created.json()["user_id"]

        promoted = client.put(f"/admin/users/{user_id}/role", json={"role": "MAKER"}, headers=headers["admin"])
        assert promoted.json()["role"] == "MAKER"

        counts = client.get("/admin/users/counts", headers=headers["admin"]).json()
        assert counts == {"USER": 0, "MAKER": 1, "CHECKER": 0, "ADMIN": 0}

        assert client.put("/admin/users/9/role", json={"role": "USER"}, headers=headers["admin"]).status_code == 403
        assert client.put("/admin/users/999/role", json={"role": "USER"}, headers=headers["admin"]).status_code == 404

    def test_merchant_category_override(self, client, headers):
        saved = client.post(
            "/merchant-categories",
            json={"merchant_name": "corner cafe", "category": "FOOD"},
            headers=headers["maker"],
        )
        assert saved.status_code == 200
        assert saved.json()["merchant_name"] == "CORNER CAFE"

        listed = client.get("/merchant-categories", headers=headers["checker"]).json()
        assert listed == [{"merchant_name": "CORNER CAFE", "category": "FOOD"}]


def test_metrics_are_admin_only(client, headers):
    reset_metrics()
    client.post("/extract", json={"sms_title": "AD-NEWBNK", "sms_text": "Spent 42"}, headers=headers["user"])

    assert client.get("/metrics", headers=headers["user"]).status_code == 403
    body = client.get("/metrics", headers=headers["admin"]).json()
    assert body["extractions"]["single:failed"] == 1
    assert body["transitions"]["capture:FAILED"] == 1
    assert body["requests"]["total"] >= 1
