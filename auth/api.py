"""HTTP routes for authentication."""

from fastapi import APIRouter

from auth.service import AuthService
from auth.types import (
    ActionResult,
    PhoneOtpRequest,
    PhoneRequest,
    PhoneSignUpRequest,
    SignInRequest,
    SignUpRequest,
    UnifiedAuthResult,
)
from api.base import success_response, error_json, ErrorCodes


def _auth_response(result: UnifiedAuthResult):
    if result.error:
        return error_json(result.error_code, result.error)
    return success_response({
        "user": result.user,
        "session": result.session.model_dump(mode="json") if result.session else None,
    })


def _action_response(result: ActionResult, message: str):
    if not result.success:
        return error_json(result.error_code, result.error)
    return success_response({"message": message})


def create_auth_router(auth_service: AuthService) -> APIRouter:
    """Create auth router with injected service."""
    router = APIRouter(tags=["auth"])

    @router.post("/signup")
    async def sign_up(body: SignUpRequest):
        """Create an email account and sign it in."""
        result = auth_service.sign_up(
            body.email,
            body.password,
            body.profile.model_dump(exclude_none=True),
        )
        return _auth_response(result)

    @router.post("/signin")
    async def sign_in(body: SignInRequest):
        return _auth_response(auth_service.sign_in(body.email, body.password))

    @router.post("/signout")
    async def sign_out():
        return _action_response(auth_service.sign_out(), "Logged out successfully")

    @router.get("/me")
    async def get_current_user():
        """The signed-in user's unified profile."""
        user = auth_service.get_current_user()
        if user is None:
            return error_json(ErrorCodes.NOT_AUTHENTICATED, "Authentication required")
        return success_response({"user": user})

    @router.patch("/profile")
    async def update_profile(body: dict):
        """Shallow-merge profile fields (either spelling) into the signed-in user."""
        return _auth_response(auth_service.update_profile(body))

    @router.post("/otp/send")
    async def send_otp(body: PhoneRequest):
        return _action_response(auth_service.send_otp(body.phone), "OTP sent")

    @router.post("/otp/verify")
    async def verify_otp(body: PhoneOtpRequest):
        """Check a code. Does not consume it."""
        return _action_response(auth_service.verify_otp(body.phone, body.otp), "OTP verified")

    @router.post("/phone/signup")
    async def sign_up_with_phone(body: PhoneSignUpRequest):
        result = auth_service.sign_up_with_phone(
            body.phone,
            body.otp,
            body.profile.model_dump(exclude_none=True),
        )
        return _auth_response(result)

    @router.post("/phone/signin")
    async def sign_in_with_phone(body: PhoneOtpRequest):
        return _auth_response(auth_service.sign_in_with_phone(body.phone, body.otp))

    return router
