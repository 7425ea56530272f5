"""Authentication of gateway->API requests."""

from fastapi import HTTPException, Request, status

from core.security import verify_request_signature


async def caller_auth(request: Request) -> str:
    """
    Authenticate a request forwarded by the gateway using an HMAC signature.

    End users are authenticated upstream; the gateway forwards their id.

    Expects headers:
    - X-User-Id: id of the user making the request
    - X-Signature: HMAC-SHA256 signature of user id and request body

    Args:
        request: FastAPI request object

    Returns:
        Caller user id

    Raises:
        HTTPException: If authentication fails
    """
    user_id = request.headers.get("X-User-Id")
    signature = request.headers.get("X-Signature")

    if not user_id or not signature:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing auth headers (X-User-Id, X-Signature)"
        )

    body = await request.body()

    if not verify_request_signature(body, user_id, signature):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    return user_id
