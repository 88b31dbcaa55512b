"""Map failed action results onto HTTP errors."""

from fastapi import HTTPException

from src.models.results import ActionResult, ErrorKind

_STATUS_FOR_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.CONFLICT: 409,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.TRANSIENT: 503,
    ErrorKind.PARTIAL_FAILURE: 500,
    ErrorKind.UNEXPECTED: 500,
}


def raise_for_result(result: ActionResult) -> None:
    if result.success:
        return
    status_code = _STATUS_FOR_KIND[result.kind or ErrorKind.UNEXPECTED]
    raise HTTPException(status_code=status_code, detail=result.error)
