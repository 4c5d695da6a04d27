"""
Core security - authentication classes and helpers for API endpoints.
"""

from collections.abc import Callable
from functools import wraps
from typing import TYPE_CHECKING, Any

from django.http import HttpRequest
from ninja.errors import HttpError
from ninja.security import HttpBearer

from apps.core.auth import AuthContext

if TYPE_CHECKING:
    from apps.accounts.models import Member, User
    from apps.organizations.models import Organization


class BearerAuth(HttpBearer):
    """
    Bearer token authentication for API endpoints.

    Token verification is performed by AuthContextMiddleware.
    This class rejects requests the middleware could not authenticate
    and provides the OpenAPI security scheme.
    """

    def authenticate(self, request, token: str) -> AuthContext | None:
        """
        Return the middleware's AuthContext when it is fully authenticated.

        Returning None triggers a 401.
        """
        if not token:
            return None
        context = getattr(request, "auth", None)
        if isinstance(context, AuthContext) and context.is_authenticated:
            return context
        return None


def get_auth_context(request: HttpRequest) -> tuple["User", "Member", "Organization"]:
    """
    Get (user, member, organization) for the request or raise 401.
    """
    context = getattr(request, "auth", None)
    if not isinstance(context, AuthContext):
        raise HttpError(401, "Not authenticated")
    return context.require_auth()


def require_admin(func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Endpoint decorator that rejects non-admin members with 403.

    Place below the router decorator so it runs after authentication.
    """

    @wraps(func)
    def wrapper(request: HttpRequest, *args: Any, **kwargs: Any) -> Any:
        context = getattr(request, "auth", None)
        if not isinstance(context, AuthContext):
            raise HttpError(401, "Not authenticated")
        context.require_admin()
        return func(request, *args, **kwargs)

    return wrapper
