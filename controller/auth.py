"""Caller identity as supplied by the upstream gateway."""

from fastapi import Header, HTTPException, status


async def get_current_user(x_user_id: str = Header(...)) -> str:
    """
    FastAPI dependency extracting the caller's user id.

    Authentication happens upstream; this service trusts the gateway-set
    ``X-User-Id`` header and only rejects a blank value.

    Args:
        x_user_id: X-User-Id header value

    Returns:
        user_id of the caller

    Raises:
        HTTPException: 401 if the header is blank
    """
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing caller identity"
        )
    return user_id
