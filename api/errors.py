"""
ErrorKind → HTTP status code 對照

body 格式：{"detail": {"error": <kind>, "message": <text>}}
"""
from fastapi import HTTPException

from core.exceptions import ErrorKind

STATUS_CODES = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.NOT_A_PARTICIPANT: 403,
    ErrorKind.INVALID_PHASE: 409,
    ErrorKind.ALREADY_SUBMITTED: 409,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.INTEGRITY_VIOLATION: 400,
}


def error_for(kind: ErrorKind, message: str) -> HTTPException:
    return HTTPException(
        status_code=STATUS_CODES[kind],
        detail={"error": kind.value, "message": message},
    )


def concurrent_update() -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={"error": "concurrent_update", "message": "Match was modified concurrently, re-fetch state"},
    )
