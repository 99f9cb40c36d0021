"""Mapping of domain errors to HTTP responses."""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from grouptodo.core.logger import grouptodo_logger as logger
from grouptodo.server.errors import ErrorKind, GroupTodoError

ERROR_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.INVALID_TOKEN: status.HTTP_400_BAD_REQUEST,
    ErrorKind.ALREADY_MEMBER: status.HTTP_409_CONFLICT,
    ErrorKind.CANNOT_INVITE_SELF: status.HTTP_400_BAD_REQUEST,
    ErrorKind.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.NOT_AUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_A_MEMBER: status.HTTP_403_FORBIDDEN,
    ErrorKind.CANNOT_REMOVE_SELF: status.HTTP_400_BAD_REQUEST,
    ErrorKind.OWNER_CONSTRAINT_VIOLATION: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_ASSIGNMENT_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_TASK_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.COMPLETION_POLICY_NOT_MET: status.HTTP_409_CONFLICT,
    ErrorKind.FORCE_CLOSE_REASON_REQUIRED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.PASSWORD_REUSE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_PASSWORD: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.TASK_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.GROUP_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.MEMBER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


def status_code_for(kind: ErrorKind) -> int:
    return ERROR_STATUS_CODES[kind]


async def domain_error_handler(request: Request, exc: GroupTodoError) -> JSONResponse:
    """Render a domain error; its context goes to the log, never to the body."""
    status_code = status_code_for(exc.kind)
    logger.warning(
        'Request failed with domain error',
        extra={'path': request.url.path, 'status_code': status_code, **exc.to_log_extra()},
    )
    return JSONResponse(
        status_code=status_code,
        content={'error': exc.kind.value, 'detail': str(exc)},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GroupTodoError, domain_error_handler)
