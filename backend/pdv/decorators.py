# Overview: Request and capability decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import User, UserStoreAccess
from .permissions import Role, capabilities_for

USER_HEADER = "X-User-Id"


def _is_identified() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'capabilities')


def require_user(f):
    """
    Resolve the acting user and its capability set.

    The caller is authenticated upstream; the gateway forwards the user id in
    the X-User-Id header. Sets:
    - g.current_user: the active User row
    - g.capabilities: frozenset of capability codes for the user's role

    Returns 401 when the header is missing, malformed, or names an unknown or
    inactive user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(USER_HEADER, "").strip()
        if not raw.isdigit():
            return jsonify({"error": "User identification required", "code": "unauthenticated"}), 401

        user = db.session.get(User, int(raw))
        if not user or not user.is_active:
            return jsonify({"error": "Unknown or inactive user", "code": "unauthenticated"}), 401

        g.current_user = user
        g.capabilities = capabilities_for(user.role)
        return f(*args, **kwargs)

    return decorated_function


def require_capability(capability: str):
    """Require a capability of the acting user's role (use after @require_user)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_identified():
                return jsonify({"error": "User identification required", "code": "unauthenticated"}), 401

            if capability not in g.capabilities:
                return jsonify({
                    "error": "Permission denied",
                    "code": "permission_denied",
                    "required_capability": capability,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def user_can_access_store(user: User, store_id: int) -> bool:
    if user.role == Role.ADMIN.value:
        return True
    return (
        db.session.query(UserStoreAccess.id)
        .filter_by(user_id=user.id, store_id=store_id)
        .first()
        is not None
    )


def store_scope_error(store_id: int | None):
    """None when the acting user may act on store_id, else a 403 response tuple."""
    if store_id is None or isinstance(store_id, bool) or not isinstance(store_id, int):
        return jsonify({"error": "store_id is required (integer)", "code": "validation_error"}), 400
    if not user_can_access_store(g.current_user, store_id):
        return jsonify({"error": "Store access denied", "code": "store_access_denied"}), 403
    return None
