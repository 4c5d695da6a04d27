"""
Core middleware.
"""

from collections.abc import Callable
from uuid import uuid4

from django.http import HttpRequest, HttpResponse

from apps.core.auth import AuthContext, read_session_token
from apps.core.logging import bind_contextvars, clear_contextvars


class AuthContextMiddleware:
    """
    Resolves the bearer token to an active member and attaches request.auth.

    Also binds trace and tenant fields to the structlog context so every
    log line of the request carries them.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        clear_contextvars()
        bind_contextvars(trace_id=request.headers.get("X-Request-ID") or uuid4().hex)

        request.auth = self._resolve(request)  # type: ignore[attr-defined]
        if request.auth.organization is not None:  # type: ignore[attr-defined]
            bind_contextvars(
                **{
                    "usr.id": str(request.auth.user.pk),  # type: ignore[attr-defined]
                    "organization.id": str(request.auth.organization.pk),  # type: ignore[attr-defined]
                }
            )

        try:
            return self.get_response(request)
        finally:
            clear_contextvars()

    def _resolve(self, request: HttpRequest) -> AuthContext:
        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token:
            return AuthContext()

        member_id = read_session_token(token.strip())
        if member_id is None:
            return AuthContext(failed=True)

        from apps.accounts.models import Member

        member = (
            Member.objects.select_related("user", "organization")
            .filter(pk=member_id, status=Member.Status.ACTIVE, user__is_active=True)
            .first()
        )
        if member is None:
            return AuthContext(failed=True)
        return AuthContext(user=member.user, member=member, organization=member.organization)
