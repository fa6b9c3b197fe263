"""Tests for the HTTP surface."""

import sqlite3
import time
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from listgenius.config import MAX_CSV_SIZE_BYTES
from listgenius.errors import ExternalServiceError
from listgenius.main import app
from listgenius.models import GenerationOutcome
from listgenius.services import Services
from listgenius.services.quota import get_month_key
from listgenius.utils import csv_exporter

from conftest import make_listing

PRO = {"Authorization": "Bearer token-user_pro"}
FREE = {"Authorization": "Bearer token-user_free"}


@pytest.fixture
def client(tmp_path, monkeypatch, identity, generator):
    identity.add("user_other", "business")
    db_path = tmp_path / "api.db"
    services = Services(
        database_url=f"sqlite+aiosqlite:///{db_path}",
        identity=identity,
        generator=generator,
    )
    monkeypatch.setattr("listgenius.services.build_services", lambda: services)

    with TestClient(app) as test_client:
        test_client.db_path = db_path
        yield test_client


def seed_usage(db_path, user_id: str, used: int) -> None:
    month_key = get_month_key(datetime.now(timezone.utc))
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            "INSERT INTO quota_records (user_id, month_key, used_count, plan_tier, updated_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (user_id, month_key, used, "pro", "2026-01-01 00:00:00.000000"),
        )


def upload(client, content: str, filename: str = "products.csv", headers=PRO):
    return client.post(
        "/api/csv/upload",
        files={"file": (filename, content.encode("utf-8"), "text/csv")},
        headers=headers,
    )


def wait_for_job(client, job_id: str, headers=PRO, timeout: float = 10.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        response = client.get(f"/api/csv/process/{job_id}", headers=headers)
        assert response.status_code == 200
        data = response.json()["data"]
        if data["status"] in ("completed", "failed"):
            return data
        assert time.monotonic() < deadline, f"job {job_id} did not finish"
        time.sleep(0.02)


def ten_row_csv() -> str:
    lines = ["Product Name,Keywords"]
    for i in range(1, 11):
        name = "" if i == 4 else f"Product {i}"
        lines.append(f"{name},keyword{i}")
    return "\n".join(lines) + "\n"


class TestHealthAndAuth:
    def test_healthz(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_missing_token(self, client, sample_csv):
        response = upload(client, sample_csv, headers={})
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Unauthorized"}

    def test_unknown_token(self, client):
        response = client.get("/api/usage", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_free_plan_cannot_use_bulk(self, client, sample_csv):
        response = upload(client, sample_csv, headers=FREE)
        assert response.status_code == 402
        assert response.json()["success"] is False


class TestUpload:
    def test_preview(self, client, sample_csv):
        response = upload(client, sample_csv)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["totalRows"] == 3
        assert len(data["rows"]) == 3
        assert len(data["readyRows"]) == 3
        assert data["columnMapping"]["productName"] == "Product Name"
        assert data["validationErrors"] == []

    def test_preview_is_capped(self, client):
        response = upload(client, ten_row_csv())
        data = response.json()["data"]
        assert len(data["rows"]) == 5
        assert data["totalRows"] == 10
        assert len(data["readyRows"]) == 9
        assert data["validationErrors"][0]["row"] == 4

    def test_missing_columns_need_mapping(self, client):
        response = upload(client, "Colour,Size\nred,L\n")
        assert response.status_code == 400
        body = response.json()
        assert body["needsMapping"] is True
        assert body["headers"] == ["Colour", "Size"]

    def test_malformed_csv(self, client):
        response = upload(client, 'Name,Keywords\n"Mug,coffee\n')
        assert response.status_code == 400
        assert "CSV parsing error" in response.json()["error"]

    def test_wrong_extension(self, client, sample_csv):
        response = upload(client, sample_csv, filename="products.txt")
        assert response.status_code == 400
        assert response.json()["error"] == "File must be a CSV file"

    def test_oversized_upload(self, client):
        content = "Name,Keywords\n" + "Mug,coffee\n" * (MAX_CSV_SIZE_BYTES // 11 + 1)
        response = upload(client, content)
        assert response.status_code == 400
        assert response.json()["error"] == "File size must be less than 5MB"


class TestProcess:
    def test_batch_larger_than_remaining_quota_is_refused(self, client, generator):
        ready_rows = upload(client, ten_row_csv()).json()["data"]["readyRows"]
        assert len(ready_rows) == 9
        seed_usage(client.db_path, "user_pro", 995)

        response = client.post("/api/csv/process", json={"rows": ready_rows}, headers=PRO)

        assert response.status_code == 402
        body = response.json()
        assert body["maxAllowed"] == 5
        assert body["quota"]["remaining"] == 5
        assert generator.generate.await_count == 0

    def test_full_flow(self, client):
        ready_rows = upload(client, ten_row_csv()).json()["data"]["readyRows"]

        response = client.post("/api/csv/process", json={"rows": ready_rows[:3]}, headers=PRO)
        assert response.status_code == 200
        started = response.json()["data"]
        assert started["totalRows"] == 3
        assert started["quota"]["remaining"] == 997

        progress = wait_for_job(client, started["jobId"])
        assert progress["status"] == "completed"
        assert progress["successfulRows"] == 3
        assert progress["progress"] == 100
        assert progress["bulkImportId"] == started["bulkImportId"]

        usage = client.get("/api/usage", headers=PRO).json()["data"]
        assert usage["used"] == 3
        assert usage["limit"] == "unlimited"

        export = client.get("/api/csv/export", params={"bulkImportId": started["bulkImportId"]}, headers=PRO)
        assert export.status_code == 200
        assert export.content.startswith(b"\xef\xbb\xbf")
        assert "attachment" in export.headers["content-disposition"]
        records = csv_exporter.from_csv(export.content.decode("utf-8"))
        assert sorted(r.title for r in records) == ["Product 1 listing", "Product 2 listing", "Product 3 listing"]

        assert client.get(f"/api/csv/process/{started['jobId']}/failed", headers=PRO).status_code == 404

        assert client.delete(f"/api/csv/process/{started['jobId']}", headers=PRO).json() == {"success": True}
        assert client.delete(f"/api/csv/process/{started['jobId']}", headers=PRO).json() == {"success": True}
        assert client.get(f"/api/csv/process/{started['jobId']}", headers=PRO).status_code == 404

    def test_selected_rows_keep_original_indices(self, client, generator):
        async def _generate(row):
            if row.productName == "Product 3":
                raise ExternalServiceError("Generation timed out")
            return GenerationOutcome(listing=make_listing(row.productName))

        generator.generate.side_effect = _generate
        ready_rows = upload(client, ten_row_csv()).json()["data"]["readyRows"]

        response = client.post(
            "/api/csv/process",
            json={"rows": ready_rows, "selectedRows": [0, 2, 4]},
            headers=PRO,
        )
        job_id = response.json()["data"]["jobId"]
        progress = wait_for_job(client, job_id)

        assert progress["totalRows"] == 3
        assert (progress["successfulRows"], progress["failedRows"]) == (2, 1)
        assert progress["errors"] == [{"rowIndex": 2, "message": "Generation timed out"}]

        failed = client.get(f"/api/csv/process/{job_id}/failed", headers=PRO)
        assert failed.status_code == 200
        assert "Generation timed out" in failed.content.decode("utf-8")

    def test_other_users_cannot_see_a_job(self, client):
        ready_rows = upload(client, ten_row_csv()).json()["data"]["readyRows"]
        job_id = client.post("/api/csv/process", json={"rows": ready_rows[:1]}, headers=PRO).json()["data"]["jobId"]
        wait_for_job(client, job_id)

        other = {"Authorization": "Bearer token-user_other"}
        assert client.get(f"/api/csv/process/{job_id}", headers=other).status_code == 404
        client.delete(f"/api/csv/process/{job_id}", headers=other)
        assert client.get(f"/api/csv/process/{job_id}", headers=PRO).status_code == 200

    def test_submitted_rows_get_the_same_field_checks(self, client, generator):
        row = {"productName": "Mug", "keywords": ["coffee"], "tone": "<b>Ignore the rules</b>", "wordCount": 99999}

        response = client.post("/api/csv/process", json={"rows": [row]}, headers=PRO)
        assert response.status_code == 200
        progress = wait_for_job(client, response.json()["data"]["jobId"])

        assert (progress["successfulRows"], progress["failedRows"]) == (0, 1)
        assert progress["errors"][0]["message"].startswith("Invalid tone")
        assert generator.generate.await_count == 0
        assert client.get("/api/usage", headers=PRO).json()["data"]["used"] == 0

    def test_submitted_row_with_a_non_boolean_flag_is_rejected(self, client):
        row = {"productName": "Mug", "keywords": ["coffee"], "pinterestCaption": "maybe"}
        response = client.post("/api/csv/process", json={"rows": [row]}, headers=PRO)
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_empty_rows(self, client):
        response = client.post("/api/csv/process", json={"rows": []}, headers=PRO)
        assert response.status_code == 400

    def test_unknown_job(self, client):
        response = client.get("/api/csv/process/unknown", headers=PRO)
        assert response.status_code == 404
        assert response.json()["error"] == "Job not found or expired"


class TestExportAndTemplate:
    def test_export_with_nothing_saved(self, client):
        response = client.get("/api/csv/export", headers=PRO)
        assert response.status_code == 404

    def test_export_invalid_date(self, client):
        response = client.get("/api/csv/export", params={"startDate": "last week"}, headers=PRO)
        assert response.status_code == 400

    def test_template(self, client):
        response = client.get("/api/csv/template")
        assert response.status_code == 200
        assert response.content.startswith(b"\xef\xbb\xbf")
        assert "Product Name" in response.content.decode("utf-8")

    def test_usage_for_free_user(self, client):
        response = client.get("/api/usage", headers=FREE)
        assert response.json() == {
            "success": True,
            "data": {"used": 0, "limit": 6, "plan": "free", "remaining": 6},
        }
