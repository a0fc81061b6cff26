"""
Request dependencies: authentication, role checks and the payment gateway.
"""

import hmac
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..errors import AuthzError
from ..models.client import Client
from ..models.staff import Staff
from ..services.payment_gateway import StripeGateway
from .audit_logger import log_resource_access, get_request_id
from .logging_config import user_id_var
from .security import verify_access_token

ROLE_CLIENT = "client"
ROLE_STAFF = "staff"
ROLE_ADMIN = "admin"
ROLE_INTERNAL = "internal"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


@dataclass
class CurrentUser:
    id: str
    role: str
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_client(self) -> bool:
        return self.role == ROLE_CLIENT

    @property
    def is_admin(self) -> bool:
        return self.role in (ROLE_ADMIN, ROLE_INTERNAL)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    request: Request,
    bearer_token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> CurrentUser:
    """Resolve the caller from the access_token cookie or a Bearer header."""
    token = request.cookies.get("access_token") or bearer_token
    if not token:
        raise _credentials_exception()

    payload = verify_access_token(token)
    if not payload or not payload.get("sub"):
        raise _credentials_exception()

    user_id = payload["sub"]
    role = payload.get("role")

    if role == ROLE_CLIENT:
        client = db.query(Client).filter(Client.id == user_id).first()
        if not client:
            raise _credentials_exception()
        user = CurrentUser(id=client.id, role=ROLE_CLIENT, email=client.email, name=client.name)
    elif role in (ROLE_STAFF, ROLE_ADMIN):
        member = db.query(Staff).filter(Staff.id == user_id).first()
        if not member:
            raise _credentials_exception()
        # Role comes from the row, not the token, so demotions apply immediately
        user = CurrentUser(id=member.id, role=member.role, email=member.email, name=member.name)
    else:
        raise _credentials_exception()

    user_id_var.set(user.id)
    return user


def require_roles(*roles: str):
    """Dependency factory: the caller must hold one of `roles`."""

    def checker(request: Request, user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            log_resource_access(
                "ROLE_CHECK", "endpoint", request.url.path, user.id,
                success=False, request_id=get_request_id(request)
            )
            raise AuthzError("You do not have access to this resource", role=user.role)
        return user

    return checker


def get_final_charge_actor(
    request: Request,
    bearer_token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> CurrentUser:
    """
    Staff / admin session, or the internal service key.

    A request carrying X-Internal-Key equal to INTERNAL_ADMIN_API_KEY acts as
    admin without a user session.
    """
    internal_key = request.headers.get("X-Internal-Key")
    if internal_key and settings.internal_admin_api_key:
        if hmac.compare_digest(internal_key, settings.internal_admin_api_key):
            return CurrentUser(id="internal", role=ROLE_INTERNAL)

    user = get_current_user(request, bearer_token, db)
    if user.role not in (ROLE_STAFF, ROLE_ADMIN):
        log_resource_access(
            "ROLE_CHECK", "endpoint", request.url.path, user.id,
            success=False, request_id=get_request_id(request)
        )
        raise AuthzError("Staff or admin access required", role=user.role)
    return user


def get_payment_gateway(request: Request) -> StripeGateway:
    """One gateway per app, built lazily from settings."""
    gateway = getattr(request.app.state, "payment_gateway", None)
    if gateway is None:
        gateway = StripeGateway.from_settings(settings)
        request.app.state.payment_gateway = gateway
    return gateway
