"""
api/problems.py -- Failure values to HTTP problem documents.

Services never raise for expected outcomes; they return a core.errors.Failure.
Route handlers hand those to raise_for(), which converts the failure kind to
its status code through the STATUS_BY_KIND table and raises HTTPException.
The exception handlers in api/main.py then render every error, whatever its
origin, through problem_response() so clients see one schema.

Layer rule: imports from core/ and fastapi only.
"""

from __future__ import annotations

from typing import NoReturn, Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR

from api.models import ProblemDetails
from core.errors import STATUS_BY_KIND, TITLE_BY_KIND, ErrorKind, Failure

_PROBLEM_TYPE = "https://httpstatuses.io/{status}"

_TITLE_BY_STATUS: dict[int, str] = {STATUS_BY_KIND[kind]: TITLE_BY_KIND[kind] for kind in ErrorKind}
_TITLE_BY_STATUS[429] = "Too Many Requests"
_TITLE_BY_STATUS[405] = "Method Not Allowed"


def raise_for(failure: Failure) -> NoReturn:
    raise HTTPException(status_code=failure.status_code, detail=failure.detail)


def title_for(status: int) -> str:
    return _TITLE_BY_STATUS.get(status, "Error")


def problem_response(
    request: Request,
    status: int,
    detail: Optional[str] = None,
    errors: Optional[dict[str, list[str]]] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    """Build the JSON problem document for *status*.

    request_id comes from the request-id middleware; instance is the path
    the client called. The id is also set as the X-Request-ID header because
    500s are rendered outside that middleware.
    """
    if status >= HTTP_500_INTERNAL_SERVER_ERROR:
        # Internal details stay in the log.
        detail = "An unexpected error occurred."
    problem = ProblemDetails(
        type=_PROBLEM_TYPE.format(status=status),
        title=title_for(status),
        status=status,
        detail=detail,
        instance=request.url.path,
        request_id=getattr(request.state, "request_id", None),
        errors=errors,
    )
    headers = dict(headers or {})
    if problem.request_id:
        headers["X-Request-ID"] = problem.request_id
    return JSONResponse(
        status_code=status,
        content=problem.model_dump(exclude_none=True),
        headers=headers,
        media_type="application/problem+json",
    )


def validation_errors(raw: list[dict]) -> dict[str, list[str]]:
    """Group pydantic error dicts by field name.

    The leading location segment ("body", "query") is dropped. Model-level
    errors have no field and are grouped under the location itself.
    """
    grouped: dict[str, list[str]] = {}
    for err in raw:
        loc = [str(part) for part in err.get("loc", ())]
        field = ".".join(loc[1:]) if len(loc) > 1 else (loc[0] if loc else "request")
        msg = str(err.get("msg", "Invalid value"))
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        grouped.setdefault(field, []).append(msg)
    return grouped
