"""Unit tests for AppError hierarchy and the exception handlers."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel

from errors import (
    AppError,
    ConflictError,
    DeliveryError,
    ForbiddenError,
    InternalError,
    InvalidOrExpiredError,
    NotFoundError,
    RateLimitedError,
    UnauthorizedError,
    ValidationError,
    register_error_handlers,
)


class TestAppErrorSubclasses:
    @pytest.mark.parametrize(
        "cls, status, code",
        [
            (ValidationError, 400, "validation_error"),
            (UnauthorizedError, 401, "unauthorized"),
            (ForbiddenError, 403, "forbidden"),
            (NotFoundError, 404, "not_found"),
            (ConflictError, 409, "conflict"),
            (InvalidOrExpiredError, 400, "invalid_or_expired"),
            (DeliveryError, 502, "delivery_failed"),
            (InternalError, 500, "internal_error"),
        ],
        ids=lambda v: v.__name__ if isinstance(v, type) else None,
    )
    def test_defaults(self, cls, status, code):
        e = cls("boom")
        assert isinstance(e, AppError)
        assert e.status_code == status
        assert e.error_code == code
        assert e.message == "boom"

    def test_rate_limited_carries_retry_after(self):
        e = RateLimitedError("slow down", retry_after=42)
        assert e.status_code == 429
        assert e.error_code == "rate_limited"
        assert e.retry_after == 42
        assert e.details == {"retry_after": 42}
        assert e.headers() == {"Retry-After": "42"}

    def test_per_instance_overrides(self):
        e = InvalidOrExpiredError("bad token", status_code=401, code="token_rejected")
        assert e.status_code == 401
        assert e.error_code == "token_rejected"
        # Class defaults untouched
        assert InvalidOrExpiredError.status_code == 400

    def test_plain_errors_have_no_headers(self):
        assert NotFoundError("x").headers() is None


class TestAppErrorToDict:
    def test_basic(self):
        e = NotFoundError("User not found")
        assert e.to_dict() == {"error": "User not found", "code": "not_found"}

    @pytest.mark.parametrize(
        "kwargs, key, value",
        [
            ({"field": "email"}, "field", "email"),
            ({"details": {"account_id": "a1"}}, "details", {"account_id": "a1"}),
        ],
        ids=["with_field", "with_details"],
    )
    def test_optional_key_present(self, kwargs, key, value):
        e = ValidationError("invalid", **kwargs)
        assert e.to_dict()[key] == value

    def test_no_optional_keys_when_absent(self):
        d = NotFoundError("missing").to_dict()
        assert "field" not in d
        assert "details" not in d


class _Body(BaseModel):
    email: str


def _app() -> FastAPI:
    app = FastAPI()
    register_error_handlers(app)

    @app.get("/rate-limited")
    async def rate_limited():
        raise RateLimitedError("wait", retry_after=7)

    @app.get("/crash")
    async def crash():
        raise KeyError("internal detail")

    @app.post("/body")
    async def body(payload: _Body):
        return {"ok": True}

    return app


class TestErrorHandlers:
    def test_app_error_becomes_json_with_headers(self):
        with TestClient(_app()) as client:
            resp = client.get("/rate-limited")
        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "7"
        assert resp.json() == {
            "error": "wait",
            "code": "rate_limited",
            "details": {"retry_after": 7},
        }

    def test_unhandled_exception_is_generic_500(self):
        with TestClient(_app(), raise_server_exceptions=False) as client:
            resp = client.get("/crash")
        assert resp.status_code == 500
        body = resp.json()
        assert body["code"] == "internal_error"
        assert "internal detail" not in resp.text

    def test_request_validation_maps_to_validation_error(self):
        with TestClient(_app()) as client:
            resp = client.post("/body", json={})
        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "validation_error"
        assert body["field"] == "email"
