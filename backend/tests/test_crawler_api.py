"""Tests for the ingest API application factory."""
from __future__ import annotations

import sys
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient
from rq.worker import SimpleWorker

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.crawler_api import create_app  # noqa: E402
from backend.crawler_api.schemas import (  # noqa: E402
    ConfigModel,
    MovieDetailModel,
    RunItemModel,
    RunLogCreate,
    RunLogModel,
    RunModel,
    RunRequest,
    RunResultModel,
)
from backend.crawler_api.services import runner as runner_module  # noqa: E402
from backend.crawler_api.services.runner import RunStores, enqueue_run_record, execute_run  # noqa: E402
from backend.crawler_api.settings import IngestSettings  # noqa: E402
from backend.crawler_api.stores.run_event_store import RunEventStore  # noqa: E402
from backend.ingest.errors import PersistenceError  # noqa: E402
from backend.tests.fakes import FakeUpstream, phimapi_movie  # noqa: E402


def _settings(tmp_path: Path) -> IngestSettings:
    return IngestSettings(
        database_url=f"sqlite:///{tmp_path / 'ingest.db'}",
        redis_url="fakeredis://",
        default_wait_min_ms=0,
        default_wait_max_ms=0,
    )


@pytest.fixture()
def upstream() -> FakeUpstream:
    return FakeUpstream(
        {
            "phim-a": phimapi_movie("phim-a", servers={"Vietsub #1": 2, "Thuyết Minh": 1}),
            "phim-b": phimapi_movie("phim-b", movie_type="single", year=2023),
            "phim-c": phimapi_movie("phim-c", movie_type="hoathinh", genres=[("Kinh Dị", "kinh-di")]),
        },
        pages={1: ["phim-a", "phim-b"], 2: ["phim-c"]},
    )


@pytest.fixture()
def client(tmp_path: Path, upstream: FakeUpstream) -> TestClient:
    """Provide a test client backed by an isolated SQLite database and fake upstream."""

    app = create_app(settings=_settings(tmp_path), source_transport=upstream.transport())
    return TestClient(app)


def drain_runs(client: TestClient) -> None:
    """Drain queued runs using an in-process RQ worker."""

    app_state = client.app.state.app_state
    worker = SimpleWorker([app_state.run_queue.queue], connection=app_state.run_queue.connection)
    worker.work(burst=True)


@pytest.fixture()
def worker_transport(monkeypatch: pytest.MonkeyPatch, upstream: FakeUpstream) -> None:
    """Route adapters built inside worker jobs to the fake upstream."""

    original = runner_module.create_adapter

    def _create_adapter(config, *, timeout, transport=None):
        return original(config, timeout=timeout, transport=upstream.transport())

    monkeypatch.setattr(runner_module, "create_adapter", _create_adapter)


def _inline(client: TestClient, **payload) -> RunResultModel:
    response = client.post("/runs", json={"inline": True, **payload})
    assert response.status_code == 200, response.text
    return RunResultModel.model_validate(response.json())


def test_health_endpoint_reports_ok_status(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "version": "0.1.0",
        "queue": {"status": "ok", "detail": None},
    }


def test_config_defaults_come_from_settings(client: TestClient) -> None:
    config = ConfigModel.model_validate(client.get("/config").json())

    assert config.active_source == "phimapi"
    assert config.wait_min_ms == 0
    assert config.wait_max_ms == 0
    assert config.image_proxy_url is None


def test_config_round_trip_and_clearing_image_proxy(client: TestClient) -> None:
    response = client.put(
        "/config",
        json={"active_source": "nguonc", "wait_min_ms": 500, "wait_max_ms": 900, "image_proxy_url": "https://img/proxy"},
    )
    assert response.status_code == 200
    updated = ConfigModel.model_validate(response.json())
    assert updated.active_source == "nguonc"
    assert updated.image_proxy_url == "https://img/proxy"

    cleared = client.put("/config", json={"image_proxy_url": None})
    assert cleared.status_code == 200
    persisted = ConfigModel.model_validate(client.get("/config").json())
    assert persisted.image_proxy_url is None
    assert persisted.wait_max_ms == 900


def test_config_rejects_unknown_source_and_inverted_window(client: TestClient) -> None:
    assert client.put("/config", json={"active_source": "elsewhere"}).status_code == 422
    assert client.put("/config", json={"wait_min_ms": 5000}).status_code == 422
    assert client.put("/config", json={"wait_min_ms": -1}).status_code == 422


def test_sources_list_flags_active_source(client: TestClient) -> None:
    response = client.get("/sources")

    assert response.status_code == 200
    sources = {item["key"]: item for item in response.json()}
    assert set(sources) == {"phimapi", "nguonc"}
    assert sources["phimapi"]["active"] is True
    assert sources["phimapi"]["tag"] == "[PhimAPI]"
    assert sources["nguonc"]["detail_path"] == "/api/film"


def test_source_status_reports_online(client: TestClient) -> None:
    response = client.get("/sources/phimapi/status")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "online"
    assert payload["latency_ms"] >= 0


def test_source_status_reports_offline_when_upstream_fails(tmp_path: Path) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(503, text="down"))
    client = TestClient(create_app(settings=_settings(tmp_path), source_transport=transport))

    response = client.get("/sources/phimapi/status")

    assert response.status_code == 200
    assert response.json()["status"] == "offline"
    assert "503" in response.json()["detail"]


def test_source_status_returns_404_for_unknown_source(client: TestClient) -> None:
    assert client.get("/sources/elsewhere/status").status_code == 404


def test_resolve_list_collects_slugs_across_pages(client: TestClient) -> None:
    response = client.post("/sources/phimapi/list", json={"page_from": 1, "page_to": 2})

    assert response.status_code == 200
    payload = response.json()
    assert payload["slugs"] == ["phim-a", "phim-b", "phim-c"]
    assert payload["count"] == 3


def test_resolve_list_validates_range(client: TestClient) -> None:
    response = client.post("/sources/phimapi/list", json={"page_from": 3, "page_to": 1})

    assert response.status_code == 422


def test_resolve_list_maps_upstream_failure_to_502(tmp_path: Path) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
    client = TestClient(create_app(settings=_settings(tmp_path), source_transport=transport))

    response = client.post("/sources/phimapi/list", json={"page_from": 1, "page_to": 1})

    assert response.status_code == 502


def test_shuffle_endpoint_returns_permutation(client: TestClient) -> None:
    work_list = [f"slug-{index}" for index in range(10)]

    response = client.post("/runs/shuffle", json={"work_list": work_list})

    assert response.status_code == 200
    assert sorted(response.json()["work_list"]) == sorted(work_list)


def test_inline_run_ingests_catalog_end_to_end(client: TestClient) -> None:
    result = _inline(
        client,
        work_list=["https://phimapi.com/phim/phim-a", "phim-b", "phim-missing"],
        work_text="phim-c\n\n",
        skip_formats=["single"],
        skip_genres=["Kinh Dị"],
    )

    assert result.run.status == "success"
    assert result.run.total == 4
    assert result.run.processed == 4
    assert result.run.movies_added == 2
    assert result.run.movies_skipped == 1
    assert result.run.movies_failed == 1
    assert result.run.message == "1 items failed, 1 items skipped"
    assert result.run.progress == 1.0
    assert result.run.duration is not None and result.run.duration.endswith("s")
    assert result.added == 2 and result.updated == 0
    assert [item.url for item in result.successes] == [
        "https://phimapi.com/phim/phim-a",
        "https://phimapi.com/phim/phim-c",
    ]
    assert result.skipped[0].message == "Skipped format: single"
    assert result.errors[0].message == "Movie not found: phim-missing"

    movies = client.get("/catalog/movies").json()
    assert movies["total"] == 2
    assert {item["slug"] for item in movies["items"]} == {"phim-a", "phim-c"}

    detail = MovieDetailModel.model_validate(client.get("/catalog/movies/phim-a").json())
    assert [category.slug for category in detail.categories] == ["phim-bo"]
    assert [genre.slug for genre in detail.genres] == ["hanh-dong"]
    assert [country.slug for country in detail.countries] == ["han-quoc"]
    assert {actor.slug for actor in detail.actors} == {"lee-min-ho", "kim-go-eun"}
    assert [server.server_name for server in detail.servers] == ["[PhimAPI] Thuyết Minh", "[PhimAPI] Vietsub #1"]
    assert sum(len(server.episodes) for server in detail.servers) == 3

    horror = MovieDetailModel.model_validate(client.get("/catalog/movies/phim-c").json())
    assert horror.genres == []
    assert [category.slug for category in horror.categories] == ["phim-hoat-hinh"]

    metrics = client.get("/catalog/metrics").json()
    assert metrics["movies"] == 2
    assert metrics["episodes"] == 5
    assert metrics["type_counts"] == {"hoathinh": 1, "series": 1}


def test_inline_rerun_is_additive(client: TestClient, upstream: FakeUpstream) -> None:
    first = _inline(client, work_list=["phim-a"])
    upstream.movies["phim-a"] = phimapi_movie("phim-a", name="Renamed", servers={"Vietsub #1": 4, "Thuyết Minh": 1})
    second = _inline(client, work_list=["phim-a"])

    assert first.added == 1
    assert second.added == 0 and second.updated == 1
    assert second.successes[0].episodes_added == 2
    assert second.run.movies_updated == 1

    detail = MovieDetailModel.model_validate(client.get("/catalog/movies/phim-a").json())
    assert detail.name == "Phim A"
    assert sum(len(server.episodes) for server in detail.servers) == 5


def test_run_items_and_logs_are_recorded(client: TestClient) -> None:
    result = _inline(client, work_list=["phim-a", "phim-missing"])
    run_id = result.run.id

    items = [RunItemModel.model_validate(item) for item in client.get(f"/runs/{run_id}/items").json()]
    assert [item.status for item in items] == ["success", "error"]
    assert items[0].created is True

    errors = client.get(f"/runs/{run_id}/items", params={"status": "error"}).json()
    assert [item["url"] for item in errors] == ["https://phimapi.com/phim/phim-missing"]

    logs = [RunLogModel.model_validate(item) for item in client.get(f"/runs/{run_id}/logs").json()]
    assert logs[0].message == "Crawl 2 movies from phimapi started"
    assert logs[-1].message == "Run success"
    assert [log.item_status for log in logs if log.item_status] == ["success", "error"]
    assert logs[2].level == "error"


def test_run_requests_are_validated(client: TestClient) -> None:
    assert client.post("/runs", json={"work_list": []}).status_code == 422
    assert client.post("/runs", json={"work_list": ["  "], "work_text": "\n"}).status_code == 422
    assert client.post("/runs", json={"work_list": ["a"], "source": "elsewhere"}).status_code == 422
    assert client.post("/runs", json={"work_list": ["a"], "skip_formats": ["documentary"]}).status_code == 422
    assert client.get("/runs").json() == []


def test_queued_run_is_processed_by_worker(client: TestClient, worker_transport: None) -> None:
    response = client.post("/runs", json={"work_list": ["phim-a", "phim-b"]})

    assert response.status_code == 201
    run = RunModel.model_validate(response.json())
    assert run.status == "queued"
    assert run.total == 2
    assert run.started_at is None

    drain_runs(client)

    finished = RunModel.model_validate(client.get(f"/runs/{run.id}").json())
    assert finished.status == "success"
    assert finished.movies_added == 2
    assert finished.worker_id
    assert finished.started_at is not None and finished.finished_at is not None
    assert finished.duration_seconds is not None and finished.duration_seconds >= 0

    logs = [entry["message"] for entry in client.get(f"/runs/{run.id}/logs").json()]
    assert logs[0] == "Crawl 2 movies from phimapi enqueued"
    assert logs[-1] == "Run success"


def test_cancelling_queued_run_prevents_execution(client: TestClient, worker_transport: None) -> None:
    run = RunModel.model_validate(client.post("/runs", json={"work_list": ["phim-a"]}).json())

    response = client.post(f"/runs/{run.id}/cancel", json={"reason": "operator stop"})
    assert response.status_code == 200
    cancelled = RunModel.model_validate(response.json())
    assert cancelled.status == "cancelled"
    assert cancelled.message == "operator stop"
    assert cancelled.finished_at is not None

    drain_runs(client)

    assert client.get(f"/runs/{run.id}").json()["status"] == "cancelled"
    assert client.get("/catalog/movies").json()["total"] == 0
    assert client.post(f"/runs/{run.id}/cancel").status_code == 409


def test_cancelling_running_run_sets_flag(client: TestClient) -> None:
    run_store = client.app.state.app_state.run_store
    run = run_store.enqueue("Crawl 3 movies from phimapi", source="phimapi", total=3)
    run_store.mark_running(run.id, worker_id="worker-1")

    response = client.post(f"/runs/{run.id}/cancel")

    assert response.status_code == 200
    payload = RunModel.model_validate(response.json())
    assert payload.status == "running"
    assert payload.cancel_requested is True
    assert run_store.is_cancel_requested(run.id) is True


def test_cancel_flag_stops_running_run_at_next_item(client: TestClient, upstream: FakeUpstream) -> None:
    app_state = client.app.state.app_state
    stores = app_state.run_stores()
    request = RunRequest(work_list=["phim-a", "phim-b", "phim-c"])
    run = enqueue_run_record(stores, request, app_state.settings)

    def _handle(http_request: httpx.Request) -> httpx.Response:
        # The operator cancels while the second movie is being fetched.
        if http_request.url.path.endswith("/phim-b"):
            stores.runs.request_cancel(run.id, reason="operator stop")
        return upstream.handle(http_request)

    summary = execute_run(
        run.id,
        request,
        settings=app_state.settings,
        stores=stores,
        worker_id="worker-1",
        transport=httpx.MockTransport(_handle),
    )

    assert summary.status == "cancelled"
    assert summary.processed == 2

    finished = RunModel.model_validate(client.get(f"/runs/{run.id}").json())
    assert finished.status == "cancelled"
    assert finished.message == "cancelled after 2/3 items"
    assert finished.finished_at is not None
    assert finished.processed == 2
    assert finished.movies_added == 2
    assert finished.cancel_requested is True

    logs = [entry["message"] for entry in client.get(f"/runs/{run.id}/logs").json()]
    assert logs[-1] == "Run cancelled"
    assert len(client.get(f"/runs/{run.id}/items").json()) == 2
    assert client.get("/catalog/movies/phim-c").status_code == 404
    assert client.post(f"/runs/{run.id}/cancel").status_code == 409


def test_run_cancelled_before_worker_start_stays_cancelled(client: TestClient, upstream: FakeUpstream) -> None:
    app_state = client.app.state.app_state
    stores = app_state.run_stores()
    request = RunRequest(work_list=["phim-a"])
    run = enqueue_run_record(stores, request, app_state.settings)
    stores.runs.mark_cancelled(run.id)

    summary = execute_run(
        run.id,
        request,
        settings=app_state.settings,
        stores=stores,
        worker_id="worker-1",
        transport=upstream.transport(),
    )

    assert summary.status == "cancelled"
    assert summary.processed == 0
    stored = stores.runs.get(run.id)
    assert stored is not None
    assert stored.status == "cancelled"
    assert stored.message == "cancelled before start"
    assert client.get("/catalog/movies").json()["total"] == 0


class _ClosingEventFailure(RunEventStore):
    def append(self, run_id: str, payload: RunLogCreate) -> RunLogModel:
        if payload.message == "Run success":
            raise PersistenceError("event table offline")
        return super().append(run_id, payload)


def test_lost_closing_event_keeps_run_result(client: TestClient, upstream: FakeUpstream) -> None:
    app_state = client.app.state.app_state
    stores = RunStores(
        config=app_state.config_store,
        catalog=app_state.catalog_store,
        runs=app_state.run_store,
        events=_ClosingEventFailure(app_state.engine),
    )
    request = RunRequest(work_list=["phim-a"])
    run = enqueue_run_record(stores, request, app_state.settings)

    summary = execute_run(
        run.id,
        request,
        settings=app_state.settings,
        stores=stores,
        worker_id="worker-1",
        transport=upstream.transport(),
    )

    assert summary.status == "success"
    finished = stores.runs.get(run.id)
    assert finished is not None
    assert finished.status == "success"
    assert finished.movies_added == 1
    logs = [entry["message"] for entry in client.get(f"/runs/{run.id}/logs").json()]
    assert "Run success" not in logs
    assert "Run failed" not in logs


def test_finished_runs_are_immutable(client: TestClient) -> None:
    result = _inline(client, work_list=["phim-a"])
    run_store = client.app.state.app_state.run_store

    with pytest.raises(RuntimeError):
        run_store.mark_failed(result.run.id, message="late failure")
    assert client.post(f"/runs/{result.run.id}/cancel").status_code == 409
    assert client.get(f"/runs/{result.run.id}").json()["status"] == "success"


def test_runs_list_supports_status_and_source_filters(client: TestClient) -> None:
    run_store = client.app.state.app_state.run_store
    queued = run_store.enqueue("Crawl 1 movies from nguonc", source="nguonc", total=1)
    failed = run_store.enqueue("Crawl 1 movies from phimapi", source="phimapi", total=1)
    run_store.mark_failed(failed.id, message="boom")
    succeeded = _inline(client, work_list=["phim-a"]).run

    status_response = client.get("/runs", params=[("status", "success"), ("status", "error")])
    assert status_response.status_code == 200
    by_status = [RunModel.model_validate(item) for item in status_response.json()]
    assert {run.id for run in by_status} == {failed.id, succeeded.id}

    by_source = client.get("/runs", params={"source": "nguonc"}).json()
    assert [item["id"] for item in by_source] == [queued.id]

    metrics = client.get("/runs/metrics").json()
    assert metrics["total"] == 3
    assert metrics["status_counts"] == {"error": 1, "queued": 1, "success": 1}
    assert metrics["source_counts"] == {"nguonc": 1, "phimapi": 2}
    assert metrics["movies_added"] == 1


def test_missing_resources_return_404(client: TestClient) -> None:
    assert client.get("/runs/missing").status_code == 404
    assert client.get("/runs/missing/items").status_code == 404
    assert client.get("/runs/missing/logs").status_code == 404
    assert client.post("/runs/missing/cancel").status_code == 404
    assert client.get("/catalog/movies/missing").status_code == 404
    assert client.post("/sources/elsewhere/list", json={"page_from": 1, "page_to": 1}).status_code == 404
