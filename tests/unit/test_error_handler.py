"""Unit tests for the error hierarchy and FastAPI exception handlers."""


import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from trendcrawl.middleware.error_handler import (
    AuthenticationError,
    CrawlAttemptError,
    CrawlEngineError,
    InvalidTaskError,
    NoActiveProxiesError,
    ScheduleNotFoundError,
    TaskNotFoundError,
    TaskRunningError,
    ValidationError,
    register_error_handlers,
)
from trendcrawl.resilience.error_classifier import ErrorClassifier


# ---------------------------------------------------------------------------
# Test app fixture
# ---------------------------------------------------------------------------


def _make_app() -> FastAPI:
    """Build a minimal FastAPI app with error handlers registered."""
    app = FastAPI()
    register_error_handlers(app)

    @app.get("/raise-engine")
    async def _raise_engine():
        raise CrawlEngineError()

    @app.get("/raise-invalid-task")
    async def _raise_invalid_task():
        raise InvalidTaskError("max_retries must be non-negative, got -1")

    @app.get("/raise-task-not-found")
    async def _raise_task_nf():
        raise TaskNotFoundError("Task 'task_x' not found")

    @app.get("/raise-task-running")
    async def _raise_task_running():
        raise TaskRunningError()

    @app.get("/raise-proxy")
    async def _raise_proxy():
        raise NoActiveProxiesError()

    @app.get("/raise-validation")
    async def _raise_validation():
        raise ValidationError("Bad field", fields=["priority"])

    @app.get("/raise-unhandled")
    async def _raise_unhandled():
        raise RuntimeError("something unexpected")

    from pydantic import BaseModel

    class Payload(BaseModel):
        platform: str
        max_pages: int

    @app.post("/validate")
    async def _validate(payload: Payload):
        return {"ok": True}

    return app


@pytest.fixture()
def client():
    return TestClient(_make_app(), raise_server_exceptions=False)


# ---------------------------------------------------------------------------
# Error hierarchy tests
# ---------------------------------------------------------------------------


class TestErrorHierarchy:
    """All custom errors are subclasses of CrawlEngineError."""

    def test_all_subclass_engine_error(self):
        for cls in (
            ValidationError,
            AuthenticationError,
            InvalidTaskError,
            TaskNotFoundError,
            TaskRunningError,
            ScheduleNotFoundError,
            NoActiveProxiesError,
            CrawlAttemptError,
        ):
            assert issubclass(cls, CrawlEngineError)

    def test_status_codes(self):
        assert CrawlEngineError.status_code == 500
        assert ValidationError.status_code == 422
        assert AuthenticationError.status_code == 401
        assert InvalidTaskError.status_code == 422
        assert TaskNotFoundError.status_code == 404
        assert TaskRunningError.status_code == 409
        assert ScheduleNotFoundError.status_code == 404
        assert NoActiveProxiesError.status_code == 503
        assert CrawlAttemptError.status_code == 502

    def test_custom_message_and_details(self):
        err = ValidationError("Bad field", fields=["priority"])
        assert err.message == "Bad field"
        assert err.details == {"fields": ["priority"]}
        assert str(err) == "Bad field"

    def test_crawl_attempt_error_carries_classification(self):
        classified = ErrorClassifier().classify("Crawl API returned 403")
        err = CrawlAttemptError(classified.message, classified=classified)
        assert err.classified is classified
        assert err.message == "Crawl API returned 403"
        assert CrawlAttemptError().classified is None


# ---------------------------------------------------------------------------
# Handler tests
# ---------------------------------------------------------------------------


class TestExceptionHandlers:
    @pytest.mark.parametrize(
        ("path", "status", "message"),
        [
            ("/raise-engine", 500, "Internal server error"),
            ("/raise-invalid-task", 422, "max_retries must be non-negative, got -1"),
            ("/raise-task-not-found", 404, "Task 'task_x' not found"),
            ("/raise-task-running", 409, "Task is running and cannot be cancelled"),
            ("/raise-proxy", 503, "No active proxies available"),
        ],
    )
    def test_engine_errors_render_envelope(self, client, path, status, message):
        resp = client.get(path)
        assert resp.status_code == status
        assert resp.json() == {
            "success": False,
            "data": None,
            "error": message,
            "meta": None,
        }

    def test_details_go_to_meta(self, client):
        resp = client.get("/raise-validation")
        assert resp.status_code == 422
        assert resp.json()["meta"] == {"fields": ["priority"]}

    def test_request_validation_lists_fields(self, client):
        resp = client.post("/validate", json={"platform": "amazon"})
        body = resp.json()

        assert resp.status_code == 422
        assert body["success"] is False
        assert body["error"] == "Validation error"
        assert any("max_pages" in f["field"] for f in body["meta"]["fields"])

    def test_unhandled_is_generic_500(self, client):
        resp = client.get("/raise-unhandled")
        assert resp.status_code == 500
        assert resp.json()["error"] == "Internal server error"
        assert "unexpected" not in resp.text
