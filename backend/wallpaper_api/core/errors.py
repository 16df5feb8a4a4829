from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    unauthorized = "unauthorized"
    bad_request = "bad_request"
    not_found = "not_found"
    conflict = "conflict"
    store_error = "store_error"
    internal = "internal"


STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.unauthorized: 403,
    ErrorKind.bad_request: 400,
    ErrorKind.not_found: 404,
    ErrorKind.conflict: 202,
    ErrorKind.store_error: 500,
    ErrorKind.internal: 500,
}


class AssetError(Exception):
    """Expected failure of an asset operation.

    Routers never catch it; the application maps `kind` to a status code
    in a single exception handler.
    """

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]


def bad_request(message: str = "Missing parameter") -> AssetError:
    return AssetError(ErrorKind.bad_request, message)


def not_found(message: str) -> AssetError:
    return AssetError(ErrorKind.not_found, message)


def store_error(message: str = "Database error") -> AssetError:
    return AssetError(ErrorKind.store_error, message)


def internal_error(message: str = "Internal Server Error") -> AssetError:
    return AssetError(ErrorKind.internal, message)
