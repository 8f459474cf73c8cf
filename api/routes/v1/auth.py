"""
api/routes/v1/auth.py -- Signup, OTP verification and session REST endpoints.

Routes:
  POST /api/v1/auth/signup      -- store pending registration, mail OTP; 200
  POST /api/v1/auth/verify-otp  -- promote pending registration to account; 201
  POST /api/v1/auth/signin      -- password login; sets session cookie; 200
  POST /api/v1/auth/logout      -- clears session cookie; 200
  GET  /api/v1/auth/me          -- current account (requires session)

Handlers are thin: they unpack the request model, call AuthService, and map
the result onto a response model. Failures are AuthError subclasses raised by
the service and rendered by the exception handler in api/main.py.

Handlers are plain def, not async def: the stores and bcrypt block, so
FastAPI runs them in its thread pool.

Security:
  Signin returns the same 401 for unknown email and wrong password.
  Cache-Control: no-store on signin and me responses.
  The cookie is cleared with the same attributes it was set with.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import (
    MeResponse,
    MessageResponse,
    SigninRequest,
    SigninResponse,
    SignupRequest,
    UserInfo,
    VerifyOtpRequest,
    VerifyOtpResponse,
)
from auth.dependencies import get_auth_service, get_current_account, session_token
from auth.models import Account
from auth.service import AuthService
from auth.tokens import clear_session_cookie, set_session_cookie

# Auth policy:
# - POST /api/v1/auth/signup:      public
# - POST /api/v1/auth/verify-otp:  public -- the OTP is the credential
# - POST /api/v1/auth/signin:      public
# - POST /api/v1/auth/logout:      public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/me:          requires session (get_current_account)
router = APIRouter()


@router.post("/auth/signup", response_model=MessageResponse)
def signup(body: SignupRequest, service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    """Begin registration. The account does not exist until verify-otp succeeds."""
    service.signup(body.name, body.email, body.password)
    return MessageResponse(message="OTP sent to your email. Please verify to complete registration.")


@router.post("/auth/verify-otp", response_model=VerifyOtpResponse, status_code=201)
def verify_otp(body: VerifyOtpRequest, service: AuthService = Depends(get_auth_service)) -> VerifyOtpResponse:
    account = service.verify_otp(body.email, body.otp)
    return VerifyOtpResponse(message="User verified and registered successfully!", userId=account.id)


@router.post("/auth/signin", response_model=SigninResponse)
def signin(
    request: Request,
    body: SigninRequest,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Authenticate with email and password; set the session cookie."""
    account, token = service.signin(body.email, body.password)
    resp = JSONResponse(
        status_code=200,
        content=SigninResponse(message="Login successful", user=UserInfo.from_account(account)).model_dump(),
    )
    set_session_cookie(resp, token, secure=request.app.state.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, service: AuthService = Depends(get_auth_service)) -> JSONResponse:
    """Clear the session cookie. Always succeeds."""
    service.logout(session_token(request))
    resp = JSONResponse(content=MessageResponse(message="Logged out successfully").model_dump())
    clear_session_cookie(resp, secure=request.app.state.secure_cookies)
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(account: Account = Depends(get_current_account)) -> JSONResponse:
    """Return identity information for the signed-in account."""
    resp = JSONResponse(content=MeResponse(user=UserInfo.from_account(account)).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp
