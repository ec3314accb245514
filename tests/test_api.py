import pytest
from fastapi.testclient import TestClient

import api.main as main
from idss.config import RANKING_TOP_N
from idss.data import IngestionError, PermissionDeniedError
from idss.options import build_options
from idss.session import DashboardSession


@pytest.fixture(autouse=True)
def fresh_session(monkeypatch):
    session = DashboardSession()
    monkeypatch.setattr(main, "session", session)
    return session


@pytest.fixture
def client(monkeypatch, data_ctx):
    monkeypatch.setattr(main, "load_dashboard_data", lambda: data_ctx)
    return TestClient(main.app)


@pytest.fixture
def default_filters(client):
    return client.get("/meta/state").json()["filters"]


class TestMeta:
    def test_options(self, client):
        response = client.get("/meta/options")
        assert response.status_code == 200
        body = response.json()
        assert body["years"] == ["2025", "2024", "2023"]
        assert body["score_range"] == [0.0, 1.0]

    def test_initial_state(self, client):
        body = client.get("/meta/state").json()
        assert body["filters"]["years"] == ["2025"]
        assert body["filters"]["group_flags"] == ["Sim"]
        assert body["has_active_filters"] is True
        assert body["selected"] is None


class TestTransition:
    def test_search_selects_operator(self, client, default_filters):
        response = client.post(
            "/state/transition",
            json={"filters": default_filters, "event": {"kind": "operator_searched", "term": "222"}},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["selected_registry"] == "222"
        assert body["selected_year"] == "2025"
        assert body["filters"]["modalities"] == ["Odontologia de Grupo"]

    def test_clear_keeps_selection(self, client, default_filters):
        response = client.post(
            "/state/transition",
            json={"filters": default_filters, "selected_registry": "111", "event": {"kind": "filters_cleared"}},
        )
        body = response.json()
        assert body["filters"]["modalities"] == []
        assert body["selected_registry"] == "111"

    def test_unknown_operator(self, client, default_filters):
        response = client.post(
            "/state/transition",
            json={"filters": default_filters, "event": {"kind": "operator_selected", "registry_number": "999"}},
        )
        assert response.status_code == 404

    def test_missing_dimension(self, client):
        response = client.post("/state/transition", json={"event": {"kind": "filter_toggled", "value": "x"}})
        assert response.status_code == 400
        assert response.json()["type"] == "ValueError"


class TestViews:
    def test_overview(self, client):
        response = client.post("/overview", json={})
        assert response.status_code == 200
        assert response.json()["kpis"]["operators"] == 4

    def test_ranking(self, client):
        body = client.post("/ranking?top_n=2", json={"selected_registry": "333"}).json()
        assert [row["rank"] for row in body["top"]] == [1, 2, 6]

    def test_ranking_default_size(self, monkeypatch, make_record):
        records = [make_record(registry_number=str(100 + i), legal_name=f"Operator {i:02d}", composite=i / 20) for i in range(15)]
        monkeypatch.setattr(main, "load_dashboard_data", lambda: {"records": records, "options": build_options(records)})
        body = TestClient(main.app).post("/ranking", json={}).json()
        assert len(body["top"]) == RANKING_TOP_N

    def test_comparison(self, client):
        body = client.post("/comparison?indicator=quality", json={"selected_registry": "111", "selected_year": "2025"}).json()
        assert body["indicator"] == "quality"
        assert body["operators"][0]["series_key"] == "111"

    def test_timeline(self, client):
        body = client.post("/timeline", json={"selected_registry": "111"}).json()
        assert len(body["operator_history"]) == 3

    def test_table(self, client):
        body = client.post("/table?search=beta&sort_key=year&direction=asc", json={}).json()
        assert [row["year"] for row in body["table"]["rows"]] == ["2024", "2025"]

    def test_table_bad_sort(self, client):
        response = client.post("/table?sort_key=colour", json={})
        assert response.status_code == 400


class TestExport:
    def test_filtered_csv(self, client):
        response = client.post("/export/filtered", json={"filters": {"registry_numbers": ["222"]}})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        lines = response.text.strip().splitlines()
        assert lines[0].startswith("registry_number,tax_id,legal_name,year")
        assert len(lines) == 3

    def test_unknown_view(self, client):
        assert client.post("/export/everything", json={}).status_code == 404


class TestErrors:
    def test_permission_denied(self, monkeypatch):
        def denied():
            raise PermissionDeniedError("Permission error: denied")

        monkeypatch.setattr(main, "load_dashboard_data", denied)
        response = TestClient(main.app).get("/meta/options")
        assert response.status_code == 403
        assert response.json() == {"error": "Permission error: denied", "type": "PermissionDeniedError"}

    def test_ingestion_failure(self, monkeypatch):
        def broken():
            raise IngestionError("No rows returned.")

        monkeypatch.setattr(main, "load_dashboard_data", broken)
        response = TestClient(main.app).post("/overview", json={})
        assert response.status_code == 502

    def test_reload(self, monkeypatch, data_ctx):
        calls = []
        monkeypatch.setattr(main, "clear_dashboard_cache", lambda: calls.append("cleared"))
        monkeypatch.setattr(main, "load_dashboard_data", lambda: data_ctx)
        body = TestClient(main.app).post("/reload").json()
        assert calls == ["cleared"]
        assert body["records"] == 7
        assert body["years"] == ["2025", "2024", "2023"]
        assert body["current"] is True


class TestReload:
    def test_data_loaded_once_per_process(self, monkeypatch, data_ctx):
        calls = []

        def counting():
            calls.append(1)
            return data_ctx

        monkeypatch.setattr(main, "load_dashboard_data", counting)
        client = TestClient(main.app)
        client.get("/meta/options")
        client.post("/overview", json={})
        assert calls == [1]

    def test_superseded_reload_keeps_newer_data(self, monkeypatch, fresh_session, data_ctx, make_record):
        newer = [make_record(registry_number="900", year="2026")]

        def slow_load():
            # A second reload starts and finishes while this one is in flight.
            fresh_session.complete_load(fresh_session.begin_load(), newer)
            return data_ctx

        monkeypatch.setattr(main, "clear_dashboard_cache", lambda: None)
        monkeypatch.setattr(main, "load_dashboard_data", slow_load)
        client = TestClient(main.app)
        body = client.post("/reload").json()
        assert body["current"] is False
        assert body["records"] == 1
        assert body["years"] == ["2026"]
        assert client.get("/meta/options").json()["registry_numbers"] == ["900"]

    def test_failed_reload_replaces_dataset_with_error(self, monkeypatch, data_ctx):
        monkeypatch.setattr(main, "load_dashboard_data", lambda: data_ctx)
        client = TestClient(main.app)
        assert client.get("/meta/options").status_code == 200

        def broken():
            raise IngestionError("Error fetching data: boom (Code: 500)")

        monkeypatch.setattr(main, "clear_dashboard_cache", lambda: None)
        monkeypatch.setattr(main, "load_dashboard_data", broken)
        assert client.post("/reload").status_code == 502
        assert client.post("/overview", json={}).status_code == 502
