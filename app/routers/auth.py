import uuid

from fastapi import APIRouter, Depends, HTTPException, status, Response, Request
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from ..database import get_db
from ..config import settings
from ..models.client import Client
from ..models.staff import Staff
from ..schemas.auth import RegisterRequest, UserResponse
from ..schemas.common import MessageResponse
from ..utils.security import (
    hash_password, verify_password, validate_password_strength, create_access_token
)
from ..utils.rate_limiter import limiter, get_rate_limit, get_real_client_ip
from ..utils.audit_logger import log_auth_event, get_request_id
from ..utils.dependencies import get_current_user, CurrentUser, ROLE_CLIENT

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def set_auth_cookie(response: Response, access_token: str):
    """Set the HttpOnly access token cookie"""
    response.set_cookie(
        key="access_token",
        value=access_token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        max_age=settings.access_token_expire_minutes * 60,
        path="/"
    )


def clear_auth_cookie(response: Response):
    response.delete_cookie("access_token", path="/")


def _login_payload(user_id: str, role: str, email: str, name: str) -> dict:
    return {
        "message": "Signed in",
        "user": {"id": user_id, "email": email, "name": name, "role": role},
    }


@router.post("/register", status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("register"))
def register(
    request: Request,
    response: Response,
    data: RegisterRequest,
    db: Session = Depends(get_db)
):
    """Self-service sign-up for exhibitor companies (role: client)."""
    request_id = get_request_id(request)

    is_valid, error_msg = validate_password_strength(data.password)
    if not is_valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error_msg)

    email = data.email.strip().lower()
    if db.query(Client).filter(Client.email == email).first() or \
            db.query(Staff).filter(Staff.email == email).first():
        log_auth_event("REGISTER", username=email, success=False,
                       details="Email already registered", request_id=request_id)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

    client = Client(
        email=email,
        hashed_password=hash_password(data.password),
        name=data.company_name,
        website=data.website or "",
        # The signing-up person becomes the first contact
        contacts=[{"id": str(uuid.uuid4()), "name": data.company_name, "email": email, "phone": "", "role": "Primary"}],
        locations=[],
    )
    db.add(client)
    db.commit()
    db.refresh(client)

    log_auth_event("REGISTER", username=email, user_id=client.id, success=True,
                   ip_address=get_real_client_ip(request), request_id=request_id)

    access_token = create_access_token(data={"sub": client.id, "role": ROLE_CLIENT})
    set_auth_cookie(response, access_token)
    return _login_payload(client.id, ROLE_CLIENT, client.email, client.name)


@router.post("/login")
@limiter.limit(get_rate_limit("login"))
def login(
    request: Request,
    response: Response,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    """Sign in clients and staff by email. Sets the access_token cookie and also returns it."""
    request_id = get_request_id(request)
    client_ip = get_real_client_ip(request)

    email = form_data.username.strip().lower()
    password = form_data.password or ""

    account = db.query(Client).filter(Client.email == email).first()
    role = ROLE_CLIENT
    if account is None:
        account = db.query(Staff).filter(Staff.email == email).first()
        role = account.role if account else None

    if not account or not verify_password(password, account.hashed_password):
        log_auth_event("LOGIN", username=email, success=False, details="Invalid credentials",
                       ip_address=client_ip, request_id=request_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(data={"sub": account.id, "role": role})
    set_auth_cookie(response, access_token)

    log_auth_event("LOGIN", username=email, user_id=account.id, success=True,
                   ip_address=client_ip, request_id=request_id)

    payload = _login_payload(account.id, role, account.email, account.name)
    payload.update({"access_token": access_token, "token_type": "bearer"})
    return payload


@router.post("/logout", response_model=MessageResponse)
def logout(request: Request, response: Response):
    clear_auth_cookie(response)
    log_auth_event("LOGOUT", success=True, request_id=get_request_id(request))
    return MessageResponse(message="Signed out")


@router.get("/me", response_model=UserResponse)
def me(current_user: CurrentUser = Depends(get_current_user)):
    return UserResponse(
        id=current_user.id,
        email=current_user.email,
        name=current_user.name,
        role=current_user.role,
    )
