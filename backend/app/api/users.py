"""User account endpoints: registration, sessions, profile and password recovery"""
from fastapi import APIRouter, Depends, Request, Response, status

from app.api.deps import get_account_service, require_user
from app.middleware.rate_limit import get_client_ip, get_rate_limit, limiter
from app.schemas.user import (
    AccountDelete,
    AuthResponse,
    ForgotPasswordRequest,
    MessageResponse,
    PasswordChange,
    ProfileUpdate,
    ResetPasswordRequest,
    TokenResponse,
    UserLogin,
    UserRegister,
    UserResponse,
)
from app.services.accounts import AccountService
from app.services.tokens import Identity

router = APIRouter(prefix="/users", tags=["users"])

# Same body whether or not the address belongs to an account
FORGOT_PASSWORD_MESSAGE = "If the email is registered, you will receive a link to reset your password"


def _auth_response(accounts: AccountService, user, token: str) -> AuthResponse:
    return AuthResponse(
        access_token=token,
        expires_in=accounts.tokens.expires_in,
        user=UserResponse.model_validate(user),
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("register"))
def register(
    request: Request,
    data: UserRegister,
    accounts: AccountService = Depends(get_account_service),
):
    """
    Create an account and sign the new user in

    Returns a bearer token together with the public profile.
    """
    user, token = accounts.register(
        email=data.email,
        password=data.password,
        first_name=data.first_name,
        last_name=data.last_name,
        age=data.age,
    )
    return _auth_response(accounts, user, token)


@router.post("/login", response_model=AuthResponse)
@limiter.limit(get_rate_limit("login"))
def login(
    request: Request,
    data: UserLogin,
    accounts: AccountService = Depends(get_account_service),
):
    """
    Exchange email and password for a bearer token

    Failed attempts count against the caller's IP; once the threshold is
    reached the IP is refused with 429 until the lockout elapses.
    """
    user, token = accounts.login(data.email, data.password, ip=get_client_ip(request))
    return _auth_response(accounts, user, token)


@router.post("/logout", response_model=MessageResponse)
@limiter.limit(get_rate_limit("account_write"))
def logout(
    request: Request,
    identity: Identity = Depends(require_user),
    accounts: AccountService = Depends(get_account_service),
):
    """Revoke the presented token"""
    accounts.logout(identity)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse)
@limiter.limit(get_rate_limit("account_read"))
def get_profile(
    request: Request,
    identity: Identity = Depends(require_user),
    accounts: AccountService = Depends(get_account_service),
):
    return accounts.get_user(identity.user_id)


@router.put("/me", response_model=UserResponse)
@limiter.limit(get_rate_limit("account_write"))
def update_profile(
    request: Request,
    data: ProfileUpdate,
    identity: Identity = Depends(require_user),
    accounts: AccountService = Depends(get_account_service),
):
    return accounts.update_profile(
        identity,
        first_name=data.first_name,
        last_name=data.last_name,
        age=data.age,
        email=data.email,
    )


@router.put("/me/password", response_model=TokenResponse)
@limiter.limit(get_rate_limit("account_write"))
def change_password(
    request: Request,
    data: PasswordChange,
    identity: Identity = Depends(require_user),
    accounts: AccountService = Depends(get_account_service),
):
    """
    Change the password

    The token used for this request is revoked; a fresh one is returned.
    """
    token = accounts.change_password(identity, data.current_password, data.new_password)
    return TokenResponse(access_token=token, expires_in=accounts.tokens.expires_in)


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(get_rate_limit("account_write"))
def delete_account(
    request: Request,
    data: AccountDelete,
    identity: Identity = Depends(require_user),
    accounts: AccountService = Depends(get_account_service),
):
    """Delete the account (requires the password and the text DELETE)"""
    accounts.delete_account(identity, data.password, data.confirm_text)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit(get_rate_limit("forgot_password"))
def forgot_password(
    request: Request,
    data: ForgotPasswordRequest,
    accounts: AccountService = Depends(get_account_service),
):
    """
    Start password recovery

    Answers identically for registered and unknown addresses.
    """
    accounts.request_password_reset(data.email)
    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.get("/reset-password/validate", response_model=MessageResponse)
@limiter.limit(get_rate_limit("reset_password"))
def validate_reset_token(
    request: Request,
    token: str,
    accounts: AccountService = Depends(get_account_service),
):
    """Check a reset link before showing the new-password form"""
    accounts.check_reset_token(token)
    return MessageResponse(message="Token is valid")


@router.post("/reset-password", response_model=MessageResponse)
@limiter.limit(get_rate_limit("reset_password"))
def reset_password(
    request: Request,
    data: ResetPasswordRequest,
    accounts: AccountService = Depends(get_account_service),
):
    accounts.reset_password(data.token, data.new_password)
    return MessageResponse(message="Password has been reset. You can now log in")
