"""
core/errors.py -- Domain failure values and their HTTP status table.

Services in auth/ never raise for expected domain failures (duplicate email,
wrong password, unknown account...). They return a Failure carrying an
ErrorKind and a human-readable detail. The HTTP boundary (api/problems.py)
maps the kind to a status code through STATUS_BY_KIND and renders a problem
document. Unexpected errors still propagate as exceptions and end up in the
catch-all handler as a 500.

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TypeVar, Union


class ErrorKind(str, Enum):
    BAD_REQUEST = "bad_request"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNPROCESSABLE_ENTITY = "unprocessable_entity"
    INTERNAL_SERVER_ERROR = "internal_server_error"


STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.UNPROCESSABLE_ENTITY: 422,
    ErrorKind.INTERNAL_SERVER_ERROR: 500,
}

TITLE_BY_KIND: dict[ErrorKind, str] = {
    ErrorKind.BAD_REQUEST: "Bad Request",
    ErrorKind.UNAUTHORIZED: "Unauthorized",
    ErrorKind.FORBIDDEN: "Forbidden",
    ErrorKind.NOT_FOUND: "Not Found",
    ErrorKind.CONFLICT: "Conflict",
    ErrorKind.UNPROCESSABLE_ENTITY: "Unprocessable Entity",
    ErrorKind.INTERNAL_SERVER_ERROR: "Internal Server Error",
}


@dataclass(frozen=True)
class Failure:
    """An expected, terminal failure of a service call."""

    kind: ErrorKind
    detail: str

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]


T = TypeVar("T")

# Return type of every service operation: the value, or why it failed.
Outcome = Union[T, Failure]


def bad_request(detail: str) -> Failure:
    return Failure(ErrorKind.BAD_REQUEST, detail)


def unauthorized(detail: str) -> Failure:
    return Failure(ErrorKind.UNAUTHORIZED, detail)


def forbidden(detail: str) -> Failure:
    return Failure(ErrorKind.FORBIDDEN, detail)


def not_found(detail: str) -> Failure:
    return Failure(ErrorKind.NOT_FOUND, detail)


def conflict(detail: str) -> Failure:
    return Failure(ErrorKind.CONFLICT, detail)
