"""
HTTP tests for the entries, reports, PDCA, jobs and health blueprints.

Covers status codes and error body shapes ({"error", "code", "details"?})
for the main flows; the business rules themselves are covered by the
service-level test modules.
"""

import pytest

from quality_indicators.models.audit import ActivityLog

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _payload(org, indicators, entry_date="2024-01-15", n=30, d=50):
    return {
        "unit_id": org.icu_id,
        "entry_date": entry_date,
        "entry_frequency": "monthly",
        "notes": "Data bulan Januari",
        "items": [{"indicator_id": indicators.hand_id, "numerator_value": n, "denominator_value": d}],
    }


@pytest.fixture()
def h(actors, auth_headers):
    """Headers per role: h.user, h.manager, ..."""

    class _Headers:
        def __getattr__(self, role):
            return auth_headers(getattr(actors, role))

    return _Headers()


@pytest.fixture()
def entry(client, org, indicators, h):
    res = client.post("/api/v1/entries", json=_payload(org, indicators), headers=h.user)
    assert res.status_code == 201
    return res.get_json()


class TestActorHeaders:
    def test_missing_headers_is_401(self, client, org):
        res = client.get("/api/v1/entries")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_unknown_role_is_401(self, client, org):
        res = client.get("/api/v1/entries", headers={"X-Actor-Id": "x", "X-Actor-Role": "root"})
        assert res.status_code == 401

    def test_dev_mode_runs_as_admin(self, app, client, org, monkeypatch):
        monkeypatch.setitem(app.config, "ACTOR_AUTH_ENABLED", False)
        res = client.get("/api/v1/admin/jobs")
        assert res.status_code == 200


class TestEntriesApi:
    def test_create(self, entry):
        assert entry["code"] == "NM/20240115/00001"
        assert entry["status"] == "proposed"
        assert entry["items"][0]["needs_corrective_action"] is True

    def test_duplicate_period_is_409(self, client, org, indicators, h, entry):
        res = client.post("/api/v1/entries", json=_payload(org, indicators, "2024-01-20"), headers=h.user)
        body = res.get_json()
        assert res.status_code == 409
        assert body["code"] == "ERR_CONFLICT_DUPLICATE"
        assert body["details"]["field"] == "period"

    def test_non_json_body_is_400(self, client, org, h):
        res = client.post("/api/v1/entries", data="unit_id=1", headers=h.user,
                          content_type="text/plain")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_nan_numerator_is_422(self, client, org, indicators, h):
        payload = _payload(org, indicators)
        payload["items"][0]["numerator_value"] = "nan"
        res = client.post("/api/v1/entries", json=payload, headers=h.user)
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_bad_unit_id_is_400(self, client, org, indicators, h):
        payload = _payload(org, indicators)
        payload["unit_id"] = "ICU"
        res = client.post("/api/v1/entries", json=payload, headers=h.user)
        assert res.status_code == 400

    def test_missing_items_is_422(self, client, org, indicators, h):
        payload = _payload(org, indicators)
        payload["items"] = []
        res = client.post("/api/v1/entries", json=payload, headers=h.user)
        body = res.get_json()
        assert res.status_code == 422
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert body["details"] == {"items": "required"}

    def test_unit_outside_scope_is_403(self, client, org, indicators, h):
        payload = _payload(org, indicators)
        payload["unit_id"] = org.lab_id
        res = client.post("/api/v1/entries", json=payload, headers=h.user)
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_get_and_hidden_get(self, client, h, entry):
        assert client.get(f"/api/v1/entries/{entry['id']}", headers=h.manager).status_code == 200
        res = client.get(f"/api/v1/entries/{entry['id']}", headers=h.head)
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_list_with_pagination(self, client, org, indicators, h, entry):
        client.post("/api/v1/entries", json=_payload(org, indicators, "2024-02-15"), headers=h.user)
        res = client.get(
            "/api/v1/entries?start_date=2024-01-01&end_date=2024-12-31&limit=1",
            headers=h.user,
        )
        body = res.get_json()
        assert res.status_code == 200
        assert body["total"] == 2
        assert len(body["items"]) == 1
        assert body["items"][0]["entry_date"] == "2024-02-15"

    def test_list_rejects_bad_filters(self, client, org, h):
        assert client.get("/api/v1/entries?status=approved", headers=h.user).status_code == 400
        assert client.get("/api/v1/entries?start_date=kemarin", headers=h.user).status_code == 400

    def test_update(self, client, h, entry):
        res = client.put(f"/api/v1/entries/{entry['id']}", json={"notes": "koreksi"}, headers=h.user)
        assert res.status_code == 200
        assert res.get_json()["notes"] == "koreksi"

    def test_update_status_field_is_422(self, client, h, entry):
        res = client.put(f"/api/v1/entries/{entry['id']}", json={"status": "finish"}, headers=h.admin)
        assert res.status_code == 422

    def test_delete(self, client, h, entry):
        assert client.delete(f"/api/v1/entries/{entry['id']}", headers=h.user).status_code == 200
        assert client.get(f"/api/v1/entries/{entry['id']}", headers=h.user).status_code == 404


class TestStatusApi:
    def test_full_lifecycle(self, client, h, entry):
        url = f"/api/v1/entries/{entry['id']}/status"
        item_id = entry["items"][0]["id"]

        res = client.put(url, json={
            "status": "checked", "notes": "Sesuai register",
            "items": [{"id": item_id, "is_already_checked": True}],
        }, headers=h.manager)
        assert res.status_code == 200
        assert res.get_json()["items_updated"] == 1

        res = client.put(url, json={"status": "finish"}, headers=h.auditor)
        assert res.status_code == 200
        assert res.get_json()["entry"]["status"] == "finish"

        res = client.put(url, json={"status": "pending"}, headers=h.admin)
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_STATE"

        res = client.put(f"/api/v1/entries/{entry['id']}", json={"notes": "x"}, headers=h.admin)
        assert res.status_code == 409

        logs = client.get(f"/api/v1/entries/{entry['id']}/logs", headers=h.user).get_json()
        assert [l["new_status"] for l in logs["items"]] == ["checked", "finish"]

    def test_role_not_allowed_is_403_with_allowed_list(self, client, h, entry):
        res = client.put(f"/api/v1/entries/{entry['id']}/status", json={"status": "finish"},
                         headers=h.manager)
        body = res.get_json()
        assert res.status_code == 403
        assert body["details"]["allowed"] == ["checked", "pending"]

    def test_missing_status_is_400(self, client, h, entry):
        res = client.put(f"/api/v1/entries/{entry['id']}/status", json={}, headers=h.manager)
        assert res.status_code == 400

    def test_items_must_be_a_list(self, client, h, entry):
        res = client.put(f"/api/v1/entries/{entry['id']}/status",
                         json={"status": "checked", "items": {"id": 1}}, headers=h.manager)
        assert res.status_code == 400

    def test_transitions(self, client, h, entry):
        res = client.get(f"/api/v1/entries/{entry['id']}/transitions", headers=h.auditor)
        assert res.get_json()["available"] == ["finish"]


class TestReportsApi:
    def test_unit_monthly(self, client, org, h, entry):
        res = client.get(f"/api/v1/reports/unit-monthly?unit_id={org.icu_id}&month=2024-01",
                         headers=h.user)
        body = res.get_json()
        assert res.status_code == 200
        assert body["period"]["label"] == "Januari 2024"
        assert len(body["items"]) == 1

    def test_unit_daily_requires_date(self, client, org, h):
        res = client.get(f"/api/v1/reports/unit-daily?unit_id={org.icu_id}", headers=h.user)
        assert res.status_code == 400

    def test_missing_unit_id(self, client, org, h):
        assert client.get("/api/v1/reports/unit-monthly?month=2024-01", headers=h.user).status_code == 400

    def test_hidden_unit_is_404(self, client, org, h):
        res = client.get(f"/api/v1/reports/unit-monthly?unit_id={org.lab_id}&month=2024-01",
                         headers=h.user)
        assert res.status_code == 404

    def test_unit_range(self, client, org, h, entry):
        res = client.get(
            f"/api/v1/reports/unit-range?unit_id={org.icu_id}"
            "&start_date=2024-01-01&end_date=2024-03-31",
            headers=h.user,
        )
        row = res.get_json()["items"][0]
        assert row["achievement"] == pytest.approx(60.0)
        assert row["point_score"] == pytest.approx(75.0)

    def test_summary(self, client, org, h, entry):
        res = client.get("/api/v1/reports/summary?frequency=monthly&period=2024-01", headers=h.admin)
        body = res.get_json()
        assert res.status_code == 200
        assert body["total"] == 5

    def test_yearly(self, client, org, h, entry):
        res = client.get(f"/api/v1/reports/yearly?year=2024&unit_ids={org.icu_id},{org.lab_id}",
                         headers=h.manager)
        groups = res.get_json()["unit_groups"]
        assert [g["unit_name"] for g in groups] == ["ICU"]

    def test_yearly_bad_unit_ids(self, client, org, h):
        assert client.get("/api/v1/reports/yearly?unit_ids=a,b", headers=h.admin).status_code == 400

    def test_yearly_xlsx_download(self, client, org, h, entry):
        res = client.get("/api/v1/reports/yearly.xlsx?year=2024", headers=h.auditor)
        assert res.status_code == 200
        assert res.mimetype == XLSX
        assert "laporan_indikator_mutu_2024.xlsx" in res.headers["Content-Disposition"]
        assert res.data[:2] == b"PK"
        assert ActivityLog.query.filter_by(action="EXPORT", actor="auditor.rsu").count() == 1


class TestPdcaApi:
    def test_create_list_and_queue(self, client, h, entry):
        item_id = entry["items"][0]["id"]

        queue = client.get("/api/v1/pdcas/needs-pdca", headers=h.user).get_json()
        assert queue["items"][0]["has_pdca"] is False

        res = client.post("/api/v1/pdcas", json={
            "entry_item_id": item_id,
            "pdca_date": "2024-02-01",
            "problem_title": "Kepatuhan rendah",
            "plan_description": "Pelatihan ulang",
        }, headers=h.user)
        assert res.status_code == 201
        pdca_id = res.get_json()["id"]

        assert client.get(f"/api/v1/pdcas/{pdca_id}", headers=h.manager).status_code == 200
        assert client.get("/api/v1/pdcas", headers=h.user).get_json()["total"] == 1
        queue = client.get("/api/v1/pdcas/needs-pdca", headers=h.user).get_json()
        assert queue["items"][0]["has_pdca"] is True

        res = client.put(f"/api/v1/pdcas/{pdca_id}", json={"action": "Standarisasi"}, headers=h.user)
        assert res.get_json()["action"] == "Standarisasi"
        assert client.delete(f"/api/v1/pdcas/{pdca_id}", headers=h.user).status_code == 200
        assert client.get(f"/api/v1/pdcas/{pdca_id}", headers=h.user).status_code == 404

    def test_create_validation_is_422(self, client, h, entry):
        res = client.post("/api/v1/pdcas", json={"entry_item_id": entry["items"][0]["id"]},
                          headers=h.user)
        assert res.status_code == 422


class TestJobsApi:
    def test_admin_only(self, client, org, h):
        assert client.get("/api/v1/admin/jobs", headers=h.user).status_code == 403
        res = client.get("/api/v1/admin/jobs", headers=h.admin)
        assert res.status_code == 200
        assert [j["job_name"] for j in res.get_json()["items"]] == ["activity_log_cleanup"]

    def test_run_cleanup(self, client, org, h):
        res = client.post("/api/v1/admin/jobs/activity_log_cleanup/run", headers=h.admin)
        assert res.status_code == 200
        assert res.get_json()["status"] == "success"

    def test_unknown_job_is_404(self, client, org, h):
        res = client.post("/api/v1/admin/jobs/nope/run", headers=h.admin)
        assert res.status_code == 404

    def test_disable_then_run_is_409(self, client, org, h):
        res = client.patch("/api/v1/admin/jobs/activity_log_cleanup",
                           json={"is_enabled": False}, headers=h.admin)
        assert res.status_code == 200
        assert res.get_json()["is_enabled"] is False

        res = client.post("/api/v1/admin/jobs/activity_log_cleanup/run", headers=h.admin)
        assert res.status_code == 409
        assert res.get_json()["status"] == "skipped"

    def test_toggle_requires_boolean(self, client, org, h):
        res = client.patch("/api/v1/admin/jobs/activity_log_cleanup",
                           json={"is_enabled": "no"}, headers=h.admin)
        assert res.status_code == 400

    def test_toggle_unknown_job_is_404(self, client, org, h):
        res = client.patch("/api/v1/admin/jobs/nope", json={"is_enabled": True}, headers=h.admin)
        assert res.status_code == 404


class TestDashboardApi:
    def test_stats(self, client, org, h, entry):
        res = client.get("/api/v1/dashboard/stats?year=2024&month=1", headers=h.user)
        body = res.get_json()
        assert res.status_code == 200
        assert body["entries_this_month"] == 1
        assert body["flagged_items"] == 1

    def test_stats_bad_month_is_422(self, client, org, h):
        res = client.get("/api/v1/dashboard/stats?year=2024&month=13", headers=h.user)
        assert res.status_code == 422

    def test_stats_hidden_unit_is_404(self, client, org, h):
        res = client.get(f"/api/v1/dashboard/stats?unit_id={org.lab_id}", headers=h.user)
        assert res.status_code == 404

    def test_daily_entries(self, client, org, indicators, h):
        client.post("/api/v1/entries", json={
            "unit_id": org.icu_id, "entry_date": "2024-03-05", "entry_frequency": "daily",
            "items": [{"indicator_id": indicators.fall_id, "numerator_value": 1, "denominator_value": 100}],
        }, headers=h.user)
        res = client.get("/api/v1/dashboard/daily-entries?date=2024-03-05", headers=h.user)
        body = res.get_json()
        assert body["total"] == 1
        assert body["items"][0]["completed_items"] == 1


class TestActivityLogsApi:
    def test_admin_only(self, client, org, h):
        assert client.get("/api/v1/admin/activity-logs", headers=h.auditor).status_code == 403
        assert client.get("/api/v1/admin/activity-logs/stats", headers=h.user).status_code == 403

    def test_list_and_filter(self, client, h, entry):
        client.put(f"/api/v1/entries/{entry['id']}/status", json={"status": "checked"},
                   headers=h.manager)

        body = client.get("/api/v1/admin/activity-logs", headers=h.admin).get_json()
        assert body["total"] == 2
        assert body["items"][0]["action"] == "STATUS_CHANGE"

        body = client.get("/api/v1/admin/activity-logs?action=CREATE&actor=nurse.icu",
                          headers=h.admin).get_json()
        assert body["total"] == 1
        assert body["items"][0]["details"]["entry_id"] == entry["id"]

    def test_bad_date_is_400(self, client, org, h):
        res = client.get("/api/v1/admin/activity-logs?start_date=kemarin", headers=h.admin)
        assert res.status_code == 400

    def test_stats(self, client, h, entry):
        body = client.get("/api/v1/admin/activity-logs/stats", headers=h.admin).get_json()
        assert body["total"] == 1
        assert body["by_action"] == [{"action": "CREATE", "count": 1}]


class TestHealthAndFallbacks:
    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").get_json() == {"status": "ok"}

    def test_live(self, client):
        body = client.get("/api/v1/health/live").get_json()
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["scheduler"]["status"] == "ok"

    def test_unknown_route_is_json_404(self, client):
        res = client.get("/api/v1/nothing-here")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"
