"""Tests for the `request-retry` command line interface."""

import asyncio

import pytest
from typer.testing import CliRunner

from request_retry import cli
from request_retry.cli import app, load_app
from request_retry.core.processor import ReplayProcessor
from request_retry.core.replay import DispatchResponse
from request_retry.exceptions import StorageError
from request_retry.files import MemoryBlobStorage
from request_retry.models import RetryStatus
from request_retry.storage.memory import MemoryRetryStore

runner = CliRunner()


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)
    monkeypatch.delenv("REQUEST_RETRY_APP", raising=False)


class RecordingDispatcher:
    def __init__(self, status=200):
        self.status = status
        self.retry_ids = []

    async def __call__(self, request):
        self.retry_ids.append(request.retry_id)
        return DispatchResponse(status=self.status)


def _install_processor(monkeypatch, store, dispatcher):
    captured = {}

    def _fake_build(config, app_path):
        captured["app_path"] = app_path
        return ReplayProcessor(store, MemoryBlobStorage(), dispatcher, config=config)

    monkeypatch.setattr(cli, "_build_processor", _fake_build)
    return captured


def _seed(store, record_factory, count=3, **overrides):
    async def _insert():
        for i in range(count):
            await store.insert(record_factory(fingerprint=str(i), **overrides))

    asyncio.run(_insert())


def test_no_command_shows_help():
    result = runner.invoke(app, [])
    assert result.exit_code == 0
    assert "process" in result.output
    assert "migrate" in result.output


def test_process_requires_app():
    result = runner.invoke(app, ["process"])
    assert result.exit_code == 1
    assert "requires --app" in result.output


def test_process_reports_each_record(monkeypatch, record_factory):
    store = MemoryRetryStore()
    _seed(store, record_factory, count=2)
    dispatcher = RecordingDispatcher()
    captured = _install_processor(monkeypatch, store, dispatcher)

    result = runner.invoke(app, ["process", "--app", "demo_app:app"])

    assert result.exit_code == 0
    assert captured["app_path"] == "demo_app:app"
    assert "Found 2 retries to process." in result.output
    assert "Retry ID: 1 Response: 200" in result.output
    assert "Retry ID: 2 Response: 200" in result.output
    assert dispatcher.retry_ids == [1, 2]


def test_process_app_from_environment(monkeypatch):
    captured = _install_processor(monkeypatch, MemoryRetryStore(), RecordingDispatcher())

    result = runner.invoke(app, ["process"], env={"REQUEST_RETRY_APP": "service.main:app"})

    assert result.exit_code == 0
    assert captured["app_path"] == "service.main:app"
    assert "No pending retries found (Tag: none, IDs: )." in result.output


def test_process_filters(monkeypatch, record_factory):
    store = MemoryRetryStore()
    _seed(store, record_factory, count=3, tags=["billing"])
    dispatcher = RecordingDispatcher()
    _install_processor(monkeypatch, store, dispatcher)

    result = runner.invoke(
        app,
        ["process", "--app", "x:app", "--id", "1", "--id", "3", "--tag", "billing"],
    )

    assert result.exit_code == 0
    assert dispatcher.retry_ids == [1, 3]


def test_process_fingerprint_filter(monkeypatch, record_factory):
    store = MemoryRetryStore()
    _seed(store, record_factory, count=3)
    dispatcher = RecordingDispatcher()
    _install_processor(monkeypatch, store, dispatcher)

    result = runner.invoke(app, ["process", "--app", "x:app", "--fingerprint", "1"])

    assert result.exit_code == 0
    assert dispatcher.retry_ids == [2]


def test_process_no_match_message(monkeypatch, record_factory):
    store = MemoryRetryStore()
    _seed(store, record_factory, count=1)
    _install_processor(monkeypatch, store, RecordingDispatcher())

    result = runner.invoke(app, ["process", "--app", "x:app", "--tag", "orders", "--id", "7"])

    assert result.exit_code == 0
    assert "No pending retries found (Tag: orders, IDs: 7)." in result.output


def test_process_server_errors_still_exit_zero(monkeypatch, record_factory):
    store = MemoryRetryStore()
    _seed(store, record_factory, count=1)
    _install_processor(monkeypatch, store, RecordingDispatcher(status=503))

    result = runner.invoke(app, ["process", "--app", "x:app"])

    assert result.exit_code == 0
    assert "Retry ID: 1 Response: 503" in result.output
    record = asyncio.run(store.get(1))
    assert record.status is RetryStatus.PENDING
    assert record.retries_count == 1


def test_process_storage_error_exits_one(monkeypatch):
    store = MemoryRetryStore()

    async def failing_query(retry_filter=None, now=None):
        raise StorageError("connection refused")

    monkeypatch.setattr(store, "query_due", failing_query)
    _install_processor(monkeypatch, store, RecordingDispatcher())

    result = runner.invoke(app, ["process", "--app", "x:app"])

    assert result.exit_code == 1
    assert "connection refused" in result.output


def test_process_bad_app_path_exits_one():
    result = runner.invoke(app, ["process", "--app", "no_colon_here"])
    assert result.exit_code == 1
    assert "cannot load application" in result.output


def test_process_invalid_config_exits_one():
    result = runner.invoke(
        app,
        ["process", "--app", "x:app"],
        env={"REQUEST_RETRY_MAX_RETRIES": "-2"},
    )
    assert result.exit_code == 1
    assert "invalid configuration" in result.output


def test_migrate_creates_table(tmp_path):
    database = tmp_path / "retries.db"

    result = runner.invoke(
        app,
        ["migrate"],
        env={
            "REQUEST_RETRY_DATABASE_URL": f"sqlite+aiosqlite:///{database}",
            "REQUEST_RETRY_TABLE_NAME": "failed_requests",
        },
    )

    assert result.exit_code == 0
    assert "table failed_requests ready" in result.output
    assert database.exists()


# ============================================================================
# load_app
# ============================================================================


def test_load_app_resolves_attribute():
    assert load_app("request_retry.cli:app") is app


def test_load_app_nested_attribute():
    assert load_app("request_retry.cli:app.info") is app.info


@pytest.mark.parametrize("path", ["request_retry.cli", ":app", "request_retry.cli:"])
def test_load_app_malformed(path):
    with pytest.raises(ValueError, match="module:attribute"):
        load_app(path)


def test_load_app_missing_attribute():
    with pytest.raises(ValueError, match="has no attribute"):
        load_app("request_retry.cli:nothing_here")


def test_load_app_missing_module():
    with pytest.raises(ImportError):
        load_app("request_retry_missing_module:app")
