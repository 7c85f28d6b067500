"""Authentication dependencies for protected routes."""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from hbank.dependencies.services import get_session_service
from hbank.models.user import User
from hbank.services.exceptions import InvalidCredentialsError
from hbank.services.session_service import SessionService

security = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    sessions: SessionService = Depends(get_session_service),
) -> User:
    """
    Get current authenticated user from JWT token.

    Access tokens stop working as soon as the user's sessions are revoked.

    Usage:
        @router.get("/protected")
        def protected_route(user: User = Depends(get_current_user)):
            return {"user_id": user.id}
    """
    try:
        return sessions.authenticate(credentials.credentials)
    except InvalidCredentialsError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
