"""
Authentication context for request lifecycle.

Provides a typed container for authentication state that middleware
populates and endpoints consume. Identity verification itself belongs to
the auth provider; this service only trusts tokens signed with SECRET_KEY.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.core import signing
from ninja.errors import HttpError

if TYPE_CHECKING:
    from apps.accounts.models import Member, User
    from apps.organizations.models import Organization

SESSION_TOKEN_SALT = "apps.core.auth.session"


@dataclass
class AuthContext:
    """
    Authentication context attached to requests by AuthContextMiddleware.

    Attributes:
        user: The authenticated User, or None if not authenticated
        member: The Member record linking user to organization, or None
        organization: The Organization the user is acting within, or None
        failed: True if auth was attempted but failed (vs just not present)
    """

    user: "User | None" = None
    member: "Member | None" = None
    organization: "Organization | None" = None
    failed: bool = False

    @property
    def is_authenticated(self) -> bool:
        """Check if the request is fully authenticated."""
        return self.user is not None and self.member is not None and self.organization is not None

    def require_auth(self) -> tuple["User", "Member", "Organization"]:
        """
        Get authenticated context or raise 401.

        Raises:
            HttpError 401: If not authenticated
        """
        if self.user is None or self.member is None or self.organization is None:
            raise HttpError(401, "Not authenticated")
        return self.user, self.member, self.organization

    def require_admin(self) -> tuple["User", "Member", "Organization"]:
        """
        Get authenticated context and verify admin role, or raise error.

        Raises:
            HttpError 401: If not authenticated
            HttpError 403: If not an admin
        """
        user, member, org = self.require_auth()
        if not member.is_admin:
            raise HttpError(403, "Admin access required")
        return user, member, org


def issue_session_token(member: "Member") -> str:
    """Sign a bearer token for a member. Used by the auth provider integration and tests."""
    return signing.dumps({"member_id": member.pk}, salt=SESSION_TOKEN_SALT)


def read_session_token(token: str) -> int | None:
    """Return the member ID from a signed token, or None if invalid or expired."""
    try:
        data = signing.loads(
            token,
            salt=SESSION_TOKEN_SALT,
            max_age=settings.SESSION_TOKEN_MAX_AGE,
        )
    except signing.BadSignature:
        return None
    member_id = data.get("member_id") if isinstance(data, dict) else None
    return member_id if isinstance(member_id, int) else None
