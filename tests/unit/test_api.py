from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import psycopg
import pytest
from fastapi.testclient import TestClient

from inspection_api.api import create_app
from inspection_api.api import deps
from inspection_api.api.routers import health
from inspection_api.config import Settings
from inspection_api.domain.models import CatalogItem, Report, SubmissionOutcome, UpsertResult
from inspection_api.errors import AlreadySubmittedError, ConflictError, ValidationError
from inspection_api.media import cloudinary_store
from inspection_api.repositories import StoredImage

NOW = datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)


class _FakeReportRepository:
    """In-memory report store keyed by (type, reportDate)."""

    def __init__(self) -> None:
        self.rows: Dict[Tuple[str, str], Report] = {}
        self.list_calls: List[Dict[str, Any]] = []
        self.fail_with: Optional[Exception] = None

    def _report(self, report_id: int, kind: str, payload: Dict[str, Any], reporter: Optional[str]) -> Report:
        return Report(
            id=report_id,
            reporter=reporter or "anonymous",
            type=kind,
            payload=payload,
            created_at=NOW,
            updated_at=NOW,
        )

    def create(self, kind: Any, body: Any, owner: Optional[str] = None) -> Report:
        if not kind or not isinstance(body, dict):
            raise ValidationError("invalid payload")
        return self._report(len(self.rows) + 1, kind, body, owner)

    def list_reports(self, kind=None, limit=None, lite=False) -> List[Report]:
        if self.fail_with is not None:
            raise self.fail_with
        self.list_calls.append({"kind": kind, "limit": limit, "lite": lite})
        return list(self.rows.values())

    def get(self, report_id: int) -> Optional[Report]:
        return next((r for r in self.rows.values() if r.id == report_id), None)

    def upsert(self, kind: str, natural_key: str, body: Any, owner: Optional[str] = None) -> UpsertResult:
        payload = {**body, "reportDate": natural_key}
        existing = self.rows.get((kind, natural_key))
        report_id = existing.id if existing else len(self.rows) + 1
        report = self._report(report_id, kind, payload, owner)
        self.rows[(kind, natural_key)] = report
        return UpsertResult(report=report, method="update" if existing else "insert")

    def delete_by_natural_key(self, kind: Any, natural_key: Any) -> int:
        if not kind or not natural_key:
            raise ValidationError("type & reportDate required")
        return 1 if self.rows.pop((kind, natural_key), None) else 0

    def delete_by_id(self, report_id: int) -> int:
        return 0


class _FakeCatalog:
    def list_items(self, scope, limit):
        item = CatalogItem(scope="default", code="P-1", name="Paneer", created_at=NOW, updated_at=NOW)
        return "default", [item], {"P-1": "Paneer"}

    def add_item(self, scope, code, name):
        if code == "P-1":
            raise ConflictError("DUPLICATE_CODE", message="This code already exists in this scope.")
        return CatalogItem(scope=scope or "default", code=code, name=name, created_at=NOW, updated_at=NOW)


class _FakeLedger:
    def __init__(self) -> None:
        self.calls: List[Tuple[str, Any, Any]] = []

    def view(self, token: str) -> Dict[str, Any]:
        return {"token": token, "reportId": 3, "quiz": {"questions": [{"q": "x"}]}, "alreadySubmitted": False}

    def submit(self, token: str, answers: Any, participant=None) -> SubmissionOutcome:
        self.calls.append((token, answers, participant))
        if token == "done":
            raise AlreadySubmittedError(score=90, result="PASS", submitted_at="2024-05-01T08:00:00Z")
        if len(answers or []) != 4:
            raise ValidationError("ANSWERS_LENGTH_MISMATCH", expected=4, got=len(answers or []))
        return SubmissionOutcome(
            report_id=3,
            participant_key="emp:e1",
            score=75,
            result="FAIL",
            pass_mark=80,
            submitted_at="2024-05-01T08:30:00Z",
            roster_updated=True,
        )


class _FakeImages:
    def get(self, image_id: str) -> Optional[StoredImage]:
        if image_id == "missing":
            return None
        return StoredImage(filename="site.png", mimetype="image/png", data=b"\x89PNG")


@pytest.fixture
def reports() -> _FakeReportRepository:
    return _FakeReportRepository()


@pytest.fixture
def ledger() -> _FakeLedger:
    return _FakeLedger()


@pytest.fixture
def client(reports: _FakeReportRepository, ledger: _FakeLedger) -> TestClient:
    app = create_app(pool=object(), settings=Settings(_env_file=None))
    app.dependency_overrides[deps.get_report_repository] = lambda: reports
    app.dependency_overrides[deps.get_catalog_repository] = lambda: _FakeCatalog()
    app.dependency_overrides[deps.get_ledger] = lambda: ledger
    app.dependency_overrides[deps.get_image_repository] = lambda: _FakeImages()
    return TestClient(app)


def test_root_is_plain_text(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.text == "Inspection API is running"


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert response.json() == {"ok": False, "error": "not found"}


class TestReports:
    def test_create(self, client):
        response = client.post("/api/reports", json={"type": "qcs", "payload": {"a": 1}, "reporter": "Asha"})
        assert response.status_code == 201
        body = response.json()
        assert body["ok"] is True
        assert body["report"]["reporter"] == "Asha"
        assert body["report"]["payload"] == {"a": 1}

    def test_create_without_payload(self, client):
        response = client.post("/api/reports", json={"type": "qcs"})
        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "invalid payload"}

    def test_upsert_inserts_then_updates(self, client):
        first = client.put("/api/reports/qcs?reportDate=2024-05-01", json={"details": {"line": 1}})
        second = client.put(
            "/api/reports/qcs?reportDate=2024-05-01",
            json={"reporter": "Ravi", "payload": {"details": {"line": 2}}},
        )

        assert first.status_code == 201
        assert first.json()["method"] == "insert"
        assert second.status_code == 200
        assert second.json()["method"] == "update"
        assert second.json()["report"]["id"] == first.json()["report"]["id"]
        assert second.json()["report"]["payload"] == {"details": {"line": 2}, "reportDate": "2024-05-01"}

    def test_upsert_key_from_body_only(self, client, reports):
        response = client.put("/api/reports/qcs", json={"reportDate": "2024-06-01", "details": {}})
        assert response.status_code == 201
        assert response.json()["report"]["payload"]["reportDate"] == "2024-06-01"
        assert ("qcs", "2024-06-01") in reports.rows

    def test_upsert_key_from_query_only(self, client, reports):
        response = client.put("/api/reports/qcs?reportDate=2024-01-01", json={"details": {}})
        assert response.status_code == 201
        assert ("qcs", "2024-01-01") in reports.rows

    def test_upsert_body_key_wins_over_query(self, client, reports):
        response = client.put(
            "/api/reports/qcs?reportDate=2024-01-01",
            json={"payload": {"reportDate": "2024-06-01"}, "reporter": "Ravi"},
        )
        assert response.status_code == 201
        assert list(reports.rows) == [("qcs", "2024-06-01")]

    def test_upsert_requires_report_date(self, client):
        response = client.put("/api/reports/qcs", json={"details": {}, "reportDate": "  "})
        assert response.status_code == 400
        assert response.json()["error"] == "reportDate required"

    def test_body_with_payload_field_and_other_keys_is_not_an_envelope(self, client, reports):
        body = {"reportDate": "2024-06-01", "payload": {"raw": True}, "invoiceNo": "INV-1"}
        response = client.put("/api/reports/qcs", json=body)
        assert response.status_code == 201
        assert response.json()["report"]["payload"] == body
        assert response.json()["report"]["reporter"] == "anonymous"

    def test_list_passes_raw_limit_and_lite_flag(self, client, reports):
        response = client.get("/api/reports?type=qcs&limit=10000&lite=1")
        assert response.status_code == 200
        assert response.json() == {"ok": True, "data": []}
        assert reports.list_calls == [{"kind": "qcs", "limit": "10000", "lite": True}]

    def test_get_by_non_numeric_id_is_a_validation_error(self, client):
        response = client.get("/api/reports/abc")
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_get_missing(self, client):
        response = client.get("/api/reports/99")
        assert response.status_code == 404
        assert response.json() == {"ok": False, "error": "not found"}

    def test_delete_by_natural_key_reports_count(self, client):
        client.put("/api/reports/qcs?reportDate=2024-05-01", json={})
        first = client.delete("/api/reports?type=qcs&reportDate=2024-05-01")
        second = client.delete("/api/reports?type=qcs&reportDate=2024-05-01")
        assert first.json() == {"ok": True, "deleted": 1}
        assert second.json() == {"ok": True, "deleted": 0}

    def test_delete_by_natural_key_requires_both_params(self, client):
        response = client.delete("/api/reports?type=qcs")
        assert response.status_code == 400

    def test_delete_missing_id(self, client):
        response = client.delete("/api/reports/5")
        assert response.status_code == 404

    def test_database_errors_do_not_leak(self, client, reports):
        reports.fail_with = psycopg.OperationalError("connection refused to 10.0.0.5")
        response = client.get("/api/reports")
        assert response.status_code == 500
        assert response.json() == {"ok": False, "error": "STORE_ERROR"}


class TestCatalog:
    def test_list(self, client):
        body = client.get("/api/product-catalog").json()
        assert body["scope"] == "default"
        assert body["count"] == 1
        assert body["map"] == {"P-1": "Paneer"}

    def test_duplicate_code(self, client):
        response = client.post("/api/product-catalog", json={"code": "P-1", "name": "Paneer"})
        assert response.status_code == 409
        assert response.json() == {
            "ok": False,
            "error": "DUPLICATE_CODE",
            "message": "This code already exists in this scope.",
        }

    def test_add(self, client):
        response = client.post("/api/product-catalog", json={"scope": "dairy", "code": "P-2", "name": "Ghee"})
        assert response.status_code == 201
        assert response.json()["item"]["scope"] == "dairy"


class TestTrainingSession:
    def test_view(self, client):
        body = client.get("/api/training-session/by-token/abc").json()
        assert body["ok"] is True
        assert body["token"] == "abc"

    def test_submit(self, client, ledger):
        response = client.post(
            "/api/training-session/by-token/abc/submit",
            json={"answers": [0, 1, 2, 3], "participant": {"name": "Asha", "employeeId": "E1"}},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["score"] == 75
        assert body["result"] == "FAIL"
        assert body["participantKey"] == "emp:e1"
        participant = ledger.calls[0][2]
        assert participant.employeeId == "E1"

    def test_repeat_submission_returns_prior_score(self, client):
        response = client.post("/api/training-session/by-token/done/submit", json={"answers": [0, 0, 0, 0]})
        assert response.status_code == 409
        assert response.json() == {
            "ok": False,
            "error": "ALREADY_SUBMITTED",
            "score": 90,
            "result": "PASS",
            "submittedAt": "2024-05-01T08:00:00Z",
        }

    def test_length_mismatch(self, client):
        response = client.post("/api/training-session/by-token/abc/submit", json={"answers": [0]})
        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "ANSWERS_LENGTH_MISMATCH", "expected": 4, "got": 1}


class TestHealth:
    def test_db(self, client, monkeypatch):
        monkeypatch.setattr(health, "check_connection", lambda pool: True)
        assert client.get("/health/db").json() == {"ok": True, "db": "connected"}

    def test_db_down(self, client, monkeypatch):
        def down(pool):
            raise psycopg.OperationalError("down")

        monkeypatch.setattr(health, "check_connection", down)
        response = client.get("/health/db")
        assert response.status_code == 500
        assert response.json()["ok"] is False

    def test_cloud_missing(self, client, monkeypatch):
        monkeypatch.setattr(cloudinary_store, "missing_config", lambda: ["cloud_name", "api_key"])
        response = client.get("/health/cloud")
        assert response.status_code == 500
        assert response.json() == {
            "ok": False,
            "error": "CLOUDINARY_CONFIG_MISSING",
            "missing": ["cloud_name", "api_key"],
        }


class TestImages:
    @pytest.fixture(autouse=True)
    def _configured(self, monkeypatch):
        monkeypatch.setattr(cloudinary_store, "missing_config", lambda: [])

    def test_multipart_upload(self, client, monkeypatch):
        received: List[bytes] = []

        def fake_upload(data, settings=None):
            received.append(data)
            return {"url": "https://cdn/x.jpg", "optimized_url": "https://cdn/x.jpg", "public_id": "qcs/x"}

        monkeypatch.setattr(cloudinary_store, "upload_bytes", fake_upload)
        response = client.post("/api/images", files={"photo": ("x.jpg", b"\xff\xd8data", "image/jpeg")})

        assert response.status_code == 200
        assert response.json()["public_id"] == "qcs/x"
        assert received == [b"\xff\xd8data"]

    def test_data_url_upload(self, client, monkeypatch):
        monkeypatch.setattr(
            cloudinary_store, "upload_data_url", lambda url, settings=None: {"url": "u", "public_id": "p"}
        )
        response = client.post("/api/images", json={"data": "data:image/png;base64,AAAA"})
        assert response.json() == {"ok": True, "url": "u", "public_id": "p"}

    def test_upload_without_content(self, client):
        response = client.post("/api/images", json={})
        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "no file/data"}

    def test_oversized_upload(self, client):
        client.app.state.settings = Settings(_env_file=None, upload_max_bytes=4)
        response = client.post("/api/images", files={"photo": ("x.jpg", b"123456", "image/jpeg")})
        assert response.status_code == 400
        assert response.json()["error"] == "file too large"

    def test_delete_collects_query_and_body(self, client, monkeypatch):
        seen: Dict[str, Any] = {}

        def fake_destroy_many(urls, public_ids, resource_override, delivery_override):
            seen.update(urls=urls, public_ids=public_ids, resource=resource_override)
            return {"ok": True, "deleted": 2, "failed": 0, "results": []}

        monkeypatch.setattr(cloudinary_store, "destroy_many", fake_destroy_many)
        response = client.request(
            "DELETE",
            "/api/images?publicId=qcs/a",
            json={"urls": ["https://res.cloudinary.com/d/image/upload/v1/b.jpg"], "resourceType": "image"},
        )

        assert response.json()["deleted"] == 2
        assert seen["public_ids"] == ["qcs/a", None]
        assert seen["urls"] == [None, None, "https://res.cloudinary.com/d/image/upload/v1/b.jpg"]
        assert seen["resource"] == "image"

    def test_legacy_image_bytes(self, client):
        response = client.get("/api/images/1b4e28ba-2fa1-11d2-883f-0016d3cca427")
        assert response.status_code == 200
        assert response.content == b"\x89PNG"
        assert response.headers["content-type"] == "image/png"
        assert response.headers["content-disposition"] == 'inline; filename="site.png"'

    def test_legacy_image_missing(self, client):
        assert client.get("/api/images/missing").status_code == 404
