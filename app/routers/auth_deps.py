"""
RBAC Dependencies.
Resolve the caller from the identity-provider token and enforce roles.
"""
import logging
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from typing import List, Callable
from app.database import get_db
from app.models.user import User, UserRole, APPROVER_ROLES
from app.services import auth as auth_service
from app.schemas.auth import TokenData

logger = logging.getLogger(__name__)

# tokenUrl points at the identity provider; only used for the OpenAPI docs
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def _decode_or_401(token: str) -> dict:
    payload = auth_service.decode_access_token(token)

    if payload is None:
        logger.warning("Authentication failed: Invalid token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if payload.get("error") == "TOKEN_EXPIRED":
        logger.info("Authentication failed: Token expired")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="TOKEN_EXPIRED",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if payload.get("type") != "access":
        logger.warning("Authentication failed: Invalid token type")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return payload


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    """
    Extracts and validates the current user from the JWT token.
    """
    payload = _decode_or_401(token)

    token_data = TokenData(email=payload.get("sub"), role=payload.get("role"), org_id=payload.get("org_id"))
    if token_data.email is None:
        logger.warning("Authentication failed: Missing subject (email) in token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing subject in token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.query(User).filter(User.email == token_data.email).first()

    if user is None:
        logger.warning(f"Authentication failed: User {token_data.email} not found in database")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        logger.warning(f"Authentication failed: User {token_data.email} is inactive")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is inactive"
        )
    if token_data.org_id is not None and user.organization_id != token_data.org_id:
        logger.warning(f"Authentication failed: org mismatch for {token_data.email}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: token organization does not match user"
        )
    return user


def require_role(allowed_roles: List[UserRole]) -> Callable:
    """
    Dependency factory that checks if the user has one of the allowed roles.

    Usage:
        @router.get("/admin-only")
        def admin_endpoint(user: User = Depends(require_role([UserRole.ADMIN]))):
            ...
    """
    def role_checker(current_user: User = Depends(get_current_user)):
        if current_user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {[r.value for r in allowed_roles]}"
            )
        return current_user
    return role_checker


def get_current_org(token: str = Depends(oauth2_scheme)) -> int:
    """
    Extracts and validates the organization ID from the JWT token.
    Fast context without a database hit.
    """
    payload = _decode_or_401(token)

    org_id = payload.get("org_id")
    if org_id is None:
        logger.error(f"Org validation failed: No org_id in token for user {payload.get('sub')}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No organization context in token"
        )
    return int(org_id)


def require_admin():
    """Workflow configuration writes."""
    return require_role([UserRole.ADMIN])


def require_hr():
    """Read access to workflow configuration and manual escalation."""
    return require_role([UserRole.ADMIN, UserRole.HR])


def require_approver():
    """Anyone who can approve or hold a delegation."""
    return require_role(list(APPROVER_ROLES))
