"""
Shared pytest fixtures for all tests.

This module provides common fixtures used across multiple test modules.
Individual test modules can override these fixtures if needed.

Factories
---------
Import factories directly from their modules:

    from tests.accounts.factories import UserFactory, OrganizationFactory, MemberFactory
    from tests.billing.factories import OrganizationSubscriptionFactory

Example usage:

    @pytest.mark.django_db
    def test_something():
        org = OrganizationFactory.create()
        member = MemberFactory.create(organization=org, role="admin")
        OrganizationSubscriptionFactory.create(organization=org, seat_limit=10)
"""

from collections.abc import Callable
from typing import Any

import pytest
from django.http import HttpRequest
from django.test import Client, RequestFactory

from apps.core.auth import AuthContext, issue_session_token


class MockRequest(HttpRequest):
    """
    HttpRequest subclass for tests that allows setting auth attribute.

    Example:
        request = MockRequest()
        request.auth = AuthContext(user=user, member=member, organization=org)
    """

    auth: AuthContext


def make_request_with_auth(request: HttpRequest, auth: AuthContext) -> HttpRequest:
    """
    Set auth on a request the way AuthContextMiddleware does.

    Example:
        request = request_factory.get("/api/v1/billing/capacity")
        request = make_request_with_auth(request, AuthContext(user=user, member=member))
    """
    request.auth = auth  # type: ignore[attr-defined]
    return request


@pytest.fixture
def request_factory() -> RequestFactory:
    """
    Django request factory for unit testing views.

    Use this to call Django Ninja endpoint functions directly without going
    through routing and middleware.
    """
    return RequestFactory()


@pytest.fixture
def api_client() -> Client:
    """
    Django test client for full HTTP request/response cycle tests.

    Goes through middleware, routing and the NinjaAPI exception handlers.

    Example:
        def test_api_returns_200(api_client):
            response = api_client.get("/api/v1/health")
            assert response.status_code == 200
    """
    return Client()


@pytest.fixture
def authenticated_request(
    request_factory: RequestFactory,
) -> Callable[..., HttpRequest]:
    """
    Factory fixture for creating authenticated requests.

    Example:
        def test_authenticated_endpoint(authenticated_request, admin_member):
            request = authenticated_request(admin_member, method="post", path="/")
            result = my_endpoint(request, payload)
    """
    from tests.accounts.factories import MemberFactory

    def _make_request(
        member: Any = None,
        method: str = "get",
        path: str = "/",
        data: dict | None = None,
        content_type: str = "application/json",
    ) -> HttpRequest:
        if member is None:
            member = MemberFactory.create()

        method_func = getattr(request_factory, method.lower())
        kwargs: dict[str, Any] = {}
        if data is not None:
            kwargs["data"] = data
            kwargs["content_type"] = content_type

        request = method_func(path, **kwargs)
        return make_request_with_auth(
            request,
            AuthContext(
                user=member.user,
                member=member,
                organization=member.organization,
            ),
        )

    return _make_request


@pytest.fixture
def auth_header() -> Callable[[Any], dict[str, str]]:
    """
    Build the Authorization header for a member, for api_client tests.

    Example:
        response = api_client.get("/api/v1/billing/capacity", **auth_header(member))
    """

    def _header(member: Any) -> dict[str, str]:
        return {"HTTP_AUTHORIZATION": f"Bearer {issue_session_token(member)}"}

    return _header


@pytest.fixture
def admin_member(db):
    """
    Create an active member with admin role.

    Example:
        def test_admin_only_action(admin_member):
            assert admin_member.role == "admin"
    """
    from tests.accounts.factories import MemberFactory

    return MemberFactory.create(role="admin")


@pytest.fixture
def member(db):
    """Create an active regular member."""
    from tests.accounts.factories import MemberFactory

    return MemberFactory.create(role="member")
