"""Authentication dependencies for FastAPI."""
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from exam_api.backend import CurrentUser, DataBackend
from exam_api.config import ALGORITHM, SECRET_KEY

# HTTP Bearer scheme for JWT
security = HTTPBearer(auto_error=False)


def verify_token(token: str) -> dict | None:
    """Verify and decode a JWT token.

    Returns:
        Decoded token payload or None if invalid.
    """
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_student(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> CurrentUser:
    """Get the authenticated student from the bearer token.

    Raises:
        HTTPException: 401 if not authenticated or token is invalid.
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")

    payload = verify_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("Invalid or expired token")

    student_id = payload.get("sub")
    if not student_id:
        raise _unauthorized("Invalid token payload")

    return CurrentUser(id=str(student_id), email=payload.get("email"))


def get_backend(
    request: Request,
    student: Annotated[CurrentUser, Depends(get_current_student)],
) -> DataBackend:
    """Data backend bound to the authenticated student."""
    return request.app.state.backend.for_user(student)
