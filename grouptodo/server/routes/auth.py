"""API routes for the password reset flow."""

from fastapi import APIRouter, Request, status

from grouptodo.server.routes.models import (
    ForgotPasswordRequest,
    ResetPasswordGrantResponse,
    ResetPasswordRequest,
)
from grouptodo.server.services.password_reset_service import PasswordResetService

auth_router = APIRouter(prefix='/api/auth')


def _service(request: Request) -> PasswordResetService:
    return request.app.state.password_reset_service


@auth_router.post('/forgot-password', status_code=status.HTTP_202_ACCEPTED)
def forgot_password(body: ForgotPasswordRequest, request: Request):
    """Mail a reset link if an account uses this address.

    The response is the same whether or not the address is known.
    """
    _service(request).request_password_reset(body.email)
    return {'ok': True}


@auth_router.get(
    '/verify-reset-token/{token_id}/{raw_secret}',
    response_model=ResetPasswordGrantResponse,
)
def verify_reset_token(token_id: int, raw_secret: str, request: Request):
    """Redeem a reset link for a short-lived reset credential."""
    grant = _service(request).verify_reset_token(token_id, raw_secret)
    return ResetPasswordGrantResponse(
        access_token=grant.access_token, expires_at=grant.expires_at
    )


@auth_router.post('/reset-password', status_code=status.HTTP_204_NO_CONTENT)
def reset_password(body: ResetPasswordRequest, request: Request):
    _service(request).reset_password(body.access_token, body.new_password)
