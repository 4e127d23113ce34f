# Overview: Request and access-level decorators for API routes.

from functools import wraps

from flask import current_app, g, jsonify, request

from .context import Actor, build_context
from .errors import AuthorizationError
from .permissions import check_level
from .services import session_service


def current_context():
    """RequestContext for this request; built in before_request, actor set by require_auth."""
    ctx = getattr(g, "request_ctx", None)
    if ctx is None:
        ctx = build_context(current_app.logger, correlation_id=getattr(g, "request_id", None))
        g.request_ctx = ctx
    return ctx


def require_auth(f):
    """
    Require a valid bearer session.

    Sets:
    - g.current_user: the authenticated User
    - g.actor: Actor(user_id, level, store_id)
    - g.request_ctx.actor: same Actor, for services
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        user = session_service.validate_session(token)
        if user is None:
            return jsonify({"error": "Invalid or expired token"}), 401

        actor = Actor.from_user(user)
        g.current_user = user
        g.actor = actor
        g.token = token
        current_context().actor = actor

        return f(*args, **kwargs)

    return decorated_function


def require_level(operation: str):
    """Deny with 403 unless the caller's role level meets the operation's minimum."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "Authentication required"}), 401
            try:
                check_level(actor.level, operation)
            except AuthorizationError as e:
                current_context().logger.warning(
                    "Access denied to %s %s for user %s: %s",
                    request.method, request.path, actor.user_id, e,
                )
                return jsonify(e.to_dict()), e.status_code
            return f(*args, **kwargs)

        return decorated_function
    return decorator
