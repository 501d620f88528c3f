from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass

from flask import Flask, g, jsonify
from werkzeug.exceptions import HTTPException

from app.policysignoff.storage import StorageError


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


class ApiError(Exception):
    status_code = 500
    message = "Server Error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message

    def to_dict(self) -> dict:
        return {"message": self.message}


class ValidationFailed(ApiError):
    status_code = 422

    def __init__(self, errors: list[FieldError]) -> None:
        first = errors[0].message if errors else "The given data was invalid."
        super().__init__(first)
        self.errors = errors

    def to_dict(self) -> dict:
        by_field: dict[str, list[str]] = defaultdict(list)
        for e in self.errors:
            by_field[e.field].append(e.message)
        return {"message": self.message, "errors": dict(by_field)}


class Unauthenticated(ApiError):
    status_code = 401
    message = "Unauthenticated."


class ForbiddenError(ApiError):
    status_code = 403
    message = "This action is unauthorized."


class NotFoundError(ApiError):
    status_code = 404
    message = "Not found."


class ConflictError(ApiError):
    status_code = 409
    message = "Conflict."


class TooManyRequests(ApiError):
    status_code = 429
    message = "Too many attempts. Please wait 5 minutes."


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def _api_error(e: ApiError):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(StorageError)
    def _storage_error(e: StorageError):
        app.logger.error("Storage error (request_id=%s): %s", getattr(g, "request_id", None), e)
        return jsonify({"message": "File storage is unavailable."}), 503

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):
        return jsonify({"message": e.description or e.name}), e.code or 500

    @app.errorhandler(Exception)
    def _unhandled(e: Exception):
        # Ensure stack trace shows in the process logs.
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"message": "Server Error"}), 500
