from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class HoldError(Exception):
    """Business-rule failure raised by the legal hold engine."""

    code = "hold_error"
    status_code = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = {
            key: value.value if hasattr(value, "value") else value
            for key, value in details.items()
        }


class InvalidTransition(HoldError):
    code = "invalid_transition"
    status_code = 409


class CustodianReleased(HoldError):
    code = "custodian_released"
    status_code = 409


class AlreadyReleased(HoldError):
    code = "already_released"
    status_code = 409


class NotFound(HoldError):
    code = "not_found"
    status_code = 404


class DuplicateCustodian(HoldError):
    code = "duplicate_custodian"
    status_code = 400


class EmptyCustodianList(HoldError):
    code = "empty_custodian_list"
    status_code = 400


class DuplicateEvidence(HoldError):
    code = "duplicate_evidence"
    status_code = 409


def _error_payload(code: str, message: str, details):
    return {"code": code, "message": message, "details": details}


def register_error_handlers(app) -> None:
    @app.exception_handler(HoldError)
    async def hold_error_handler(request: Request, exc: HoldError):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_payload(exc.code, exc.message, exc.details or None),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        detail = exc.detail
        code = f"http_{exc.status_code}"
        message = "Request failed"
        details = None
        if isinstance(detail, dict):
            code = detail.get("code", code)
            message = detail.get("message", message)
            details = detail.get("details")
        elif isinstance(detail, str):
            message = detail
        else:
            details = detail
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_payload(code, message, details),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        # ctx may hold raw Exception objects that are not JSON-serialisable.
        errors = [
            {k: str(v) if k == "ctx" else v for k, v in err.items()}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=422,
            content=_error_payload("validation_error", "Validation error", errors),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        return JSONResponse(
            status_code=500,
            content=_error_payload("internal_error", "Internal server error", None),
        )
