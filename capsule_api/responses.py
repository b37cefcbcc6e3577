from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

STATUS_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    413: "LIMIT_EXCEEDED",
    500: "SERVER_ERROR",
}


def success_response(data: Any, status_code: int = 200, meta: Optional[dict] = None) -> JSONResponse:
    content = {"success": True, "data": data}
    if meta:
        content["meta"] = meta
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


def error_response(status_code: int, message: str, code: Optional[str] = None, headers=None) -> JSONResponse:
    if code is None:
        code = STATUS_CODES.get(status_code, "ERROR")
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": {"message": message, "code": code}},
        headers=headers,
    )


def describe_errors(errors) -> str:
    """Flatten pydantic error dicts into "loc: msg; loc: msg"."""
    return "; ".join(f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in errors)
