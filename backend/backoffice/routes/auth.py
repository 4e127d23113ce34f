# backend/backoffice/routes/auth.py
from flask import Blueprint, g, request

from ..decorators import current_context, require_auth, require_level
from ..errors import BackofficeError
from ..permissions import Operation
from ..services import auth_service

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login():
    """
    Body: {usernameOrEmail | username | email, password}
    Returns {token, expires_at, user}.
    """
    payload = request.get_json(silent=True) or {}
    ident = payload.get("usernameOrEmail") or payload.get("username") or payload.get("email")

    try:
        result = auth_service.login(
            current_context(),
            username_or_email=ident,
            password=payload.get("password"),
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    return result, 200


@auth_bp.post("/logout")
@require_auth
@require_level(Operation.AUTH_SESSION)
def logout():
    auth_service.logout(current_context(), g.token)
    return {"message": "Logged out"}, 200


@auth_bp.get("/me")
@require_auth
@require_level(Operation.AUTH_SESSION)
def me():
    return {"user": g.current_user.to_dict()}, 200
