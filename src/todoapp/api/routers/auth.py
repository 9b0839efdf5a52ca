from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ..auth import AUTH_COOKIE, create_access_token, hash_password, verify_password
from ..repositories import UserRepository, get_user_repository
from ..schemas import LoginRequest, LoginResponse, MessageResponse, RegisterRequest
from ..settings import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/auth",
    tags=["auth"],
)


# PUBLIC_INTERFACE
@router.post(
    "/register",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register",
    description="Create an account. Passwords are stored as bcrypt hashes.",
    responses={
        201: {"description": "User registered successfully"},
        400: {"description": "User already exists"},
    },
)
def register(payload: RegisterRequest, users: UserRepository = Depends(get_user_repository)) -> MessageResponse:
    if users.get_by_email(payload.email) is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already exists")
    try:
        users.create(payload.username, payload.email, hash_password(payload.password))
    except ValueError as exc:
        # Lost a race against a concurrent registration for the same email
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    logger.info("Registered user %s", payload.email)
    return MessageResponse(message="User registered successfully")


# PUBLIC_INTERFACE
@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Login",
    description=(
        "Exchange email and password for a bearer token. The token is returned in the body "
        "and also set as an HTTP-only cookie."
    ),
    responses={
        200: {"description": "Login successful"},
        400: {"description": "Invalid credentials"},
    },
)
def login(
    payload: LoginRequest,
    response: Response,
    users: UserRepository = Depends(get_user_repository),
) -> LoginResponse:
    user = users.get_by_email(payload.email)
    if user is None or not verify_password(payload.password, user["password_hash"]):
        logger.info("Rejected login for %s", payload.email)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid credentials")

    token = create_access_token(user_id=user["id"], email=user["email"])
    response.set_cookie(
        key=AUTH_COOKIE,
        value=token,
        httponly=True,
        max_age=get_settings().token_max_age_seconds,
    )
    return LoginResponse(token=token, email=user["email"])
