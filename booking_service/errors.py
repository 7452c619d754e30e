"""
Domain errors raised by the booking core and their HTTP mapping.

The core raises these instead of HTTPException so it stays usable outside a
request (deferred checks, event consumers). Route handlers never catch them;
the handlers registered in main.py turn them into the error envelope
`{"success": false, "message": ..., "errors": [...]}`.
"""
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class BookingError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.fields = fields or []


class ValidationError(BookingError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND


class UnauthorizedError(BookingError):
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(BookingError):
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(BookingError):
    status_code = status.HTTP_409_CONFLICT


def error_body(message: str, fields: list[str] | None = None) -> dict:
    body = {"success": False, "message": message}
    if fields:
        body["errors"] = fields
    return body


async def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.fields))


async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = []
    for err in exc.errors():
        # drop the leading "body"/"query"/"path" segment
        loc = [str(p) for p in err.get("loc", ())[1:]]
        name = ".".join(loc) or str(err.get("loc", ("request",))[0])
        if name not in fields:
            fields.append(name)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("Invalid request", fields),
    )
