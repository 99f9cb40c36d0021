"""Access to the authenticated caller.

Authentication happens upstream of these routes; whatever authenticates the
request stores the caller's id on ``request.state.user_id``.
"""

from typing import Optional

from fastapi import HTTPException, Request, status


def get_optional_user_id(request: Request) -> Optional[int]:
    return getattr(request.state, 'user_id', None)


def get_user_id(request: Request) -> int:
    user_id = get_optional_user_id(request)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Not authenticated',
        )
    return user_id
