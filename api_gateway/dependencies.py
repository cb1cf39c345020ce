"""
FastAPI dependencies.

Authentication, authorization, and access to the services attached to
`app.state` at startup.
"""

import hashlib
from typing import Optional
from uuid import UUID
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from shared.config import settings
from shared.logging import get_logger
from shared.models import Job

logger = get_logger(__name__)

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)  # Don't auto-raise on missing token

JWT_CACHE_KEY = "jwt_valid:{token_hash}"
JWT_CACHE_TTL_SECONDS = 300
ADMIN_ROLE = "admin"


def get_job_store(request: Request):
    return request.app.state.job_store


def get_credit_ledger(request: Request):
    return request.app.state.credit_ledger


def get_draft_service(request: Request):
    return request.app.state.draft_service


def get_cache(request: Request):
    """Redis job-status cache; None when the app runs without one."""
    return getattr(request.app.state, "cache", None)


def _decode_token(token: str) -> dict:
    """
    Validate a Supabase access token.

    Returns:
        {"user_id", "email", "role"}; role comes from `app_metadata.role`

    Raises:
        HTTPException: 401 if the token is invalid or has no subject
    """
    if not settings.supabase_jwt_secret:
        logger.error("SUPABASE_JWT_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication is not configured",
            headers={"WWW-Authenticate": "Bearer"}
        )
    try:
        payload = jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=["HS256"],
            options={"verify_aud": False}  # Supabase tokens don't include audience claim
        )
    except JWTError as e:
        logger.warning(
            "JWT validation failed",
            extra={"error_type": type(e).__name__, "error_message": str(e), "token_length": len(token)}
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"}
        )

    user_id = payload.get("sub")  # Supabase uses "sub" for user_id
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing user_id"
        )

    app_metadata = payload.get("app_metadata") or {}
    return {
        "user_id": user_id,
        "email": payload.get("email"),
        "role": app_metadata.get("role"),
    }


async def _authenticate(request: Request, token: str) -> dict:
    cache = get_cache(request)
    cache_key = JWT_CACHE_KEY.format(token_hash=hashlib.sha256(token.encode()).hexdigest())

    if cache is not None:
        try:
            cached = await cache.get_json(cache_key)
            if cached:
                logger.debug("JWT validated from cache", extra={"user_id": cached.get("user_id")})
                return cached
        except Exception as e:
            logger.warning("Failed to check JWT cache", exc_info=e)

    user_data = _decode_token(token)

    if cache is not None:
        try:
            await cache.set_json(cache_key, user_data, ttl=JWT_CACHE_TTL_SECONDS)
        except Exception as e:
            logger.warning("Failed to cache JWT", exc_info=e)

    logger.debug("JWT validated successfully", extra={"user_id": user_data["user_id"]})
    return user_data


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> dict:
    """
    Validate the bearer token and return the current user.

    Raises:
        HTTPException: If the token is invalid or missing
    """
    if not credentials:
        logger.warning("No token provided in Authorization header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication token",
            headers={"WWW-Authenticate": "Bearer"}
        )
    return await _authenticate(request, credentials.credentials)


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[dict]:
    """Current user when a token is sent; anonymous callers get None."""
    if not credentials:
        return None
    return await _authenticate(request, credentials.credentials)


async def require_admin(current_user: dict = Depends(get_current_user)) -> dict:
    if current_user.get("role") != ADMIN_ROLE:
        logger.warning("Admin access denied", extra={"user_id": current_user.get("user_id")})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user


def parse_uuid(value: str, label: str = "job ID") -> UUID:
    """Parse a path parameter as a UUID, raising 400 on bad input."""
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {label} format: {value}"
        )


async def verify_job_ownership(
    job_id: str,
    current_user: dict = Depends(get_current_user),
    job_store=Depends(get_job_store)
) -> Job:
    """
    Load a job and verify that it belongs to the current user.

    Admin users bypass the ownership check.

    Returns:
        The job

    Raises:
        HTTPException: 400 for a malformed ID, 404 if missing, 403 if owned by someone else
    """
    job = await job_store.get_job(parse_uuid(job_id))
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found"
        )

    user_id = current_user.get("user_id")
    is_admin = current_user.get("role") == ADMIN_ROLE
    if str(job.user_id) != user_id and not is_admin:
        logger.warning(
            "Job ownership verification failed",
            extra={"job_id": job_id, "job_user_id": str(job.user_id), "current_user_id": user_id}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Job does not belong to user"
        )
    return job
