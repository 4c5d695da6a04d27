"""
Tests for billing services.

All Stripe API calls are mocked to isolate tests from external dependencies.
"""

from unittest.mock import MagicMock, patch

import pytest
import stripe

from apps.accounts.models import Member
from apps.billing.exceptions import (
    BillingPeriodChangeError,
    BillingProviderError,
    BillingProviderUnavailableError,
    ConcurrentSeatChangeError,
    InvalidBillingPeriodError,
    NoActiveSubscriptionError,
    NoBillingCustomerError,
    OrganizationNotApprovedError,
    SeatCountOutOfRangeError,
    SeatReductionBlockedError,
    SubscriptionNotMutableError,
)
from apps.billing.models import OrganizationSubscription
from apps.billing.services import (
    build_subscription_items,
    cancel_subscription,
    change_seats,
    create_customer_portal_session,
    create_seat_checkout_session,
    get_billing_email,
    resume_subscription,
    update_seat_quantity,
)
from apps.organizations.models import Organization
from tests.accounts.factories import MemberFactory, OrganizationFactory, UserFactory
from tests.billing.factories import OrganizationSubscriptionFactory, build_stripe_subscription


def mock_stripe_with(live_subscription: dict | None = None) -> MagicMock:
    mock_stripe = MagicMock()
    mock_stripe.checkout.Session.create.return_value = MagicMock(
        id="cs_test_123", url="https://checkout.stripe.com/c/pay/cs_test_123"
    )
    if live_subscription is not None:
        mock_stripe.Subscription.retrieve.return_value = live_subscription
    return mock_stripe


@pytest.mark.django_db
class TestChangeSeatsValidation:
    @patch("apps.billing.services.get_stripe")
    def test_rejects_invalid_period(self, mock_get_stripe: MagicMock) -> None:
        org = OrganizationFactory.create()

        with pytest.raises(InvalidBillingPeriodError):
            change_seats(org, 5, "weekly")

        mock_get_stripe.assert_not_called()

    @pytest.mark.parametrize("seat_count", [0, -3, 101])
    @patch("apps.billing.services.get_stripe")
    def test_rejects_out_of_range_seats(self, mock_get_stripe: MagicMock, seat_count: int) -> None:
        org = OrganizationFactory.create()

        with pytest.raises(SeatCountOutOfRangeError):
            change_seats(org, seat_count, "monthly")

        mock_get_stripe.assert_not_called()

    @patch("apps.billing.services.get_stripe")
    def test_rejects_unapproved_organization(self, mock_get_stripe: MagicMock) -> None:
        org = OrganizationFactory.create(
            validation_status=Organization.ValidationStatus.PENDING, validated_at=None
        )

        with pytest.raises(OrganizationNotApprovedError):
            change_seats(org, 5, "monthly")

        mock_get_stripe.assert_not_called()


@pytest.mark.django_db
class TestFirstPurchase:
    """Organizations without a Stripe subscription are sent to Checkout."""

    @patch("apps.billing.services.get_stripe")
    def test_returns_checkout_url(self, mock_get_stripe: MagicMock) -> None:
        mock_stripe = mock_stripe_with()
        mock_get_stripe.return_value = mock_stripe
        org = OrganizationFactory.create()

        result = change_seats(org, 25, "monthly")

        assert result.kind == "checkout"
        assert result.checkout_url == "https://checkout.stripe.com/c/pay/cs_test_123"
        mock_stripe.Subscription.modify.assert_not_called()

    @patch("apps.billing.services.get_stripe")
    def test_checkout_params(self, mock_get_stripe: MagicMock) -> None:
        mock_stripe = mock_stripe_with()
        mock_get_stripe.return_value = mock_stripe
        org = OrganizationFactory.create(billing_email="billing@school.example")

        create_seat_checkout_session(
            org, 25, "monthly", success_url="https://app/ok", cancel_url="https://app/no"
        )

        kwargs = mock_stripe.checkout.Session.create.call_args.kwargs
        assert kwargs["mode"] == "subscription"
        assert kwargs["line_items"] == [
            {"price": "price_seat_tier1_monthly", "quantity": 20},
            {"price": "price_seat_tier2_monthly", "quantity": 5},
        ]
        assert kwargs["success_url"] == "https://app/ok"
        assert kwargs["cancel_url"] == "https://app/no"
        assert kwargs["customer_email"] == "billing@school.example"
        assert kwargs["metadata"]["organization_id"] == str(org.id)
        assert kwargs["metadata"]["pricing_version"] == "2025-11"
        assert kwargs["subscription_data"]["metadata"] == kwargs["metadata"]
        assert kwargs["idempotency_key"].startswith(f"seat-checkout:{org.id}:")

    @patch("apps.billing.services.get_stripe")
    def test_default_urls_use_site_url(self, mock_get_stripe: MagicMock, settings) -> None:
        settings.SITE_URL = "https://seats.example"
        mock_stripe = mock_stripe_with()
        mock_get_stripe.return_value = mock_stripe

        create_seat_checkout_session(OrganizationFactory.create(), 3, "yearly")

        kwargs = mock_stripe.checkout.Session.create.call_args.kwargs
        assert kwargs["success_url"].startswith("https://seats.example/billing/success")
        assert kwargs["cancel_url"] == "https://seats.example/billing/cancel"
        assert kwargs["line_items"] == [{"price": "price_seat_tier1_yearly", "quantity": 3}]

    @patch("apps.billing.services.get_stripe")
    def test_reuses_known_customer(self, mock_get_stripe: MagicMock) -> None:
        """A canceled subscription keeps its customer for the next checkout."""
        mock_stripe = mock_stripe_with()
        mock_get_stripe.return_value = mock_stripe
        sub = OrganizationSubscriptionFactory.create(
            stripe_subscription_id=None,
            stripe_customer_id="cus_returning",
            status=OrganizationSubscription.Status.CANCELED,
        )

        change_seats(sub.organization, 5, "monthly")

        kwargs = mock_stripe.checkout.Session.create.call_args.kwargs
        assert kwargs["customer"] == "cus_returning"
        assert "customer_email" not in kwargs

    @patch("apps.billing.services.get_stripe")
    def test_caller_key_makes_retries_idempotent(self, mock_get_stripe: MagicMock) -> None:
        mock_stripe = mock_stripe_with()
        mock_get_stripe.return_value = mock_stripe
        org = OrganizationFactory.create()

        change_seats(org, 5, "monthly", idempotency_key="req-1")
        change_seats(org, 5, "monthly", idempotency_key="req-1")

        keys = [c.kwargs["idempotency_key"] for c in mock_stripe.checkout.Session.create.call_args_list]
        assert keys == [f"seat-checkout:{org.id}:req-1"] * 2

    @patch("apps.billing.services.get_stripe")
    def test_checkout_writes_nothing_locally(self, mock_get_stripe: MagicMock) -> None:
        mock_get_stripe.return_value = mock_stripe_with()
        sub = OrganizationSubscriptionFactory.create(unsubscribed=True)

        change_seats(sub.organization, 5, "monthly")

        sub.refresh_from_db()
        assert sub.status == OrganizationSubscription.Status.NONE
        assert sub.seat_limit == 0

    @patch("apps.billing.services.get_stripe")
    def test_stripe_error_becomes_provider_error(self, mock_get_stripe: MagicMock) -> None:
        mock_stripe = mock_stripe_with()
        mock_stripe.checkout.Session.create.side_effect = stripe.InvalidRequestError(
            "No such price", param="line_items"
        )
        mock_get_stripe.return_value = mock_stripe

        with pytest.raises(BillingProviderError) as exc:
            change_seats(OrganizationFactory.create(), 5, "monthly")

        assert exc.value.status_code == 502


@pytest.mark.django_db
class TestGetBillingEmail:
    def test_prefers_billing_email(self) -> None:
        org = OrganizationFactory.create(billing_email="invoices@example.com")

        assert get_billing_email(org) == "invoices@example.com"

    def test_falls_back_to_first_admin(self) -> None:
        org = OrganizationFactory.create(billing_email="")
        MemberFactory.create(organization=org, role=Member.Role.MEMBER)
        MemberFactory.create(
            organization=org, role=Member.Role.ADMIN, user=UserFactory.create(email="head@example.com")
        )

        assert get_billing_email(org) == "head@example.com"

    def test_none_without_admin(self) -> None:
        assert get_billing_email(OrganizationFactory.create(billing_email="")) is None


class TestBuildSubscriptionItems:
    def test_updates_existing_tier_and_adds_new_one(self) -> None:
        live = build_stripe_subscription(seat_count=10)

        items = build_subscription_items(live, 25, "monthly")

        assert items == [
            {"id": "si_price_seat_tier1_monthly", "quantity": 20},
            {"price": "price_seat_tier2_monthly", "quantity": 5},
        ]

    def test_deletes_unused_tiers(self) -> None:
        live = build_stripe_subscription(seat_count=60)

        items = build_subscription_items(live, 15, "monthly")

        assert items == [
            {"id": "si_price_seat_tier1_monthly", "quantity": 15},
            {"id": "si_price_seat_tier2_monthly", "deleted": True},
            {"id": "si_price_seat_tier3_monthly", "deleted": True},
        ]

    def test_leaves_non_seat_items_alone(self) -> None:
        live = build_stripe_subscription(seat_count=5)
        live["items"]["data"].append(
            {"id": "si_addon", "price": {"id": "price_addon"}, "quantity": 1}
        )

        items = build_subscription_items(live, 6, "monthly")

        assert {"id": "si_addon", "deleted": True} not in items
        assert all(item.get("id") != "si_addon" for item in items)


@pytest.mark.django_db
class TestUpdateSeatQuantity:
    """Seat changes on an existing subscription."""

    @patch("apps.billing.services.get_stripe")
    def test_increase_updates_stripe_and_local_limit(self, mock_get_stripe: MagicMock) -> None:
        sub = OrganizationSubscriptionFactory.create(seat_limit=10)
        mock_stripe = mock_stripe_with(build_stripe_subscription(seat_count=10))
        mock_get_stripe.return_value = mock_stripe

        result = change_seats(sub.organization, 12, "monthly")

        assert result.kind == "update"
        assert result.quantity == 12
        assert result.prorated is True
        args, kwargs = mock_stripe.Subscription.modify.call_args
        assert args == (sub.stripe_subscription_id,)
        assert kwargs["items"] == [{"id": "si_price_seat_tier1_monthly", "quantity": 12}]
        assert kwargs["proration_behavior"] == "create_prorations"
        assert kwargs["billing_cycle_anchor"] == "unchanged"
        sub.refresh_from_db()
        assert sub.seat_limit == 12
        assert sub.pending_seat_limit is None

    @patch("apps.billing.services.get_stripe")
    def test_deferred_change_skips_proration(self, mock_get_stripe: MagicMock) -> None:
        sub = OrganizationSubscriptionFactory.create(seat_limit=10)
        mock_stripe = mock_stripe_with(build_stripe_subscription(seat_count=10))
        mock_get_stripe.return_value = mock_stripe

        result = change_seats(sub.organization, 15, "monthly", apply_immediately=False)

        assert result.prorated is False
        assert mock_stripe.Subscription.modify.call_args.kwargs["proration_behavior"] == "none"

    @patch("apps.billing.services.get_stripe")
    def test_reduction_below_members_blocked_before_stripe(
        self, mock_get_stripe: MagicMock
    ) -> None:
        """10 active members, reducing to 8 seats: blocked without touching Stripe."""
        sub = OrganizationSubscriptionFactory.create(seat_limit=10)
        MemberFactory.create_batch(10, organization=sub.organization)

        with pytest.raises(SeatReductionBlockedError) as exc:
            change_seats(sub.organization, 8, "monthly")

        assert exc.value.members_to_remove == 2
        mock_get_stripe.assert_not_called()
        sub.refresh_from_db()
        assert sub.seat_limit == 10

    @patch("apps.billing.services.get_stripe")
    def test_guard_applies_to_deferred_changes(self, mock_get_stripe: MagicMock) -> None:
        sub = OrganizationSubscriptionFactory.create(seat_limit=10)
        MemberFactory.create_batch(10, organization=sub.organization)

        with pytest.raises(SeatReductionBlockedError):
            change_seats(sub.organization, 8, "monthly", apply_immediately=False)

    @patch("apps.billing.services.get_stripe")
    def test_period_change_rejected_without_stripe_call(self, mock_get_stripe: MagicMock) -> None:
        """Monthly to yearly is not a quantity update."""
        sub = OrganizationSubscriptionFactory.create(billing_period="monthly")
        mock_stripe = mock_stripe_with(build_stripe_subscription())
        mock_get_stripe.return_value = mock_stripe

        with pytest.raises(BillingPeriodChangeError) as exc:
            change_seats(sub.organization, 10, "yearly")

        assert "Cancel the subscription and recreate it" in str(exc.value)
        mock_stripe.Subscription.retrieve.assert_not_called()
        mock_stripe.Subscription.modify.assert_not_called()

    @patch("apps.billing.services.get_stripe")
    def test_live_period_mismatch_rejected(self, mock_get_stripe: MagicMock) -> None:
        sub = OrganizationSubscriptionFactory.create(billing_period="monthly")
        mock_stripe = mock_stripe_with(build_stripe_subscription(billing_period="yearly"))
        mock_get_stripe.return_value = mock_stripe

        with pytest.raises(BillingPeriodChangeError):
            change_seats(sub.organization, 12, "monthly")

        mock_stripe.Subscription.modify.assert_not_called()

    @pytest.mark.parametrize("stripe_status", ["past_due", "canceled", "incomplete", "unpaid"])
    @patch("apps.billing.services.get_stripe")
    def test_not_mutable_statuses_rejected(
        self, mock_get_stripe: MagicMock, stripe_status: str
    ) -> None:
        sub = OrganizationSubscriptionFactory.create()
        mock_stripe = mock_stripe_with(build_stripe_subscription(status=stripe_status))
        mock_get_stripe.return_value = mock_stripe

        with pytest.raises(SubscriptionNotMutableError):
            change_seats(sub.organization, 12, "monthly")

        mock_stripe.Subscription.modify.assert_not_called()

    @patch("apps.billing.services.get_stripe")
    def test_no_subscription(self, mock_get_stripe: MagicMock) -> None:
        sub = OrganizationSubscriptionFactory.create(unsubscribed=True)

        with pytest.raises(NoActiveSubscriptionError):
            update_seat_quantity(sub.organization, 5, "monthly")

    @patch("apps.billing.services.get_stripe")
    def test_replans_after_concurrent_write(self, mock_get_stripe: MagicMock) -> None:
        """A webhook landing between plan and claim forces one replan."""
        sub = OrganizationSubscriptionFactory.create(seat_limit=10)
        live = build_stripe_subscription(seat_count=10)
        calls = []

        def retrieve(subscription_id: str) -> dict:
            calls.append(subscription_id)
            if len(calls) == 1:
                OrganizationSubscription.objects.filter(pk=sub.pk).update(revision=99)
            return live

        mock_stripe = mock_stripe_with()
        mock_stripe.Subscription.retrieve.side_effect = retrieve
        mock_get_stripe.return_value = mock_stripe

        assert update_seat_quantity(sub.organization, 12, "monthly") == 12

        assert len(calls) == 2
        mock_stripe.Subscription.modify.assert_called_once()
        sub.refresh_from_db()
        assert sub.seat_limit == 12
        assert sub.revision == 101

    @patch("apps.billing.services.get_stripe")
    def test_two_admins_racing(self, mock_get_stripe: MagicMock) -> None:
        """Raise to 15 and lower to 12 with 10 members: the loser replans on current state."""
        sub = OrganizationSubscriptionFactory.create(seat_limit=10)
        MemberFactory.create_batch(10, organization=sub.organization)
        live = build_stripe_subscription(seat_count=10)
        calls = []

        def retrieve(subscription_id: str) -> dict:
            calls.append(subscription_id)
            if len(calls) == 1:
                # The other admin's request runs to completion here
                assert update_seat_quantity(sub.organization, 12, "monthly") == 12
            return live

        mock_stripe = mock_stripe_with()
        mock_stripe.Subscription.retrieve.side_effect = retrieve
        mock_get_stripe.return_value = mock_stripe

        assert update_seat_quantity(sub.organization, 15, "monthly") == 15

        assert len(calls) == 3
        quantities = [
            c.kwargs["items"][0]["quantity"] for c in mock_stripe.Subscription.modify.call_args_list
        ]
        assert quantities == [12, 15]
        sub.refresh_from_db()
        assert sub.seat_limit == 15
        assert sub.has_live_claim is False

    @patch("apps.billing.services.get_stripe")
    def test_gives_up_after_max_attempts(self, mock_get_stripe: MagicMock, settings) -> None:
        settings.SEAT_CHANGE_MAX_ATTEMPTS = 2
        sub = OrganizationSubscriptionFactory.create()
        live = build_stripe_subscription()

        def retrieve(subscription_id: str) -> dict:
            OrganizationSubscription.objects.filter(pk=sub.pk).update(
                revision=OrganizationSubscription.objects.get(pk=sub.pk).revision + 1
            )
            return live

        mock_stripe = mock_stripe_with()
        mock_stripe.Subscription.retrieve.side_effect = retrieve
        mock_get_stripe.return_value = mock_stripe

        with pytest.raises(ConcurrentSeatChangeError):
            update_seat_quantity(sub.organization, 12, "monthly")

        assert mock_stripe.Subscription.retrieve.call_count == 2
        mock_stripe.Subscription.modify.assert_not_called()

    @patch("apps.billing.services.get_stripe")
    def test_member_admitted_during_plan_blocks_reduction(
        self, mock_get_stripe: MagicMock
    ) -> None:
        """The guard is re-run against members present at claim time."""
        sub = OrganizationSubscriptionFactory.create(seat_limit=10)
        MemberFactory.create_batch(8, organization=sub.organization)
        live = build_stripe_subscription(seat_count=10)

        def retrieve(subscription_id: str) -> dict:
            MemberFactory.create(organization=sub.organization)
            return live

        mock_stripe = mock_stripe_with()
        mock_stripe.Subscription.retrieve.side_effect = retrieve
        mock_get_stripe.return_value = mock_stripe

        with pytest.raises(SeatReductionBlockedError):
            update_seat_quantity(sub.organization, 8, "monthly")

        mock_stripe.Subscription.modify.assert_not_called()

    @patch("apps.billing.services.get_stripe")
    def test_stripe_failure_releases_claim(self, mock_get_stripe: MagicMock) -> None:
        sub = OrganizationSubscriptionFactory.create(seat_limit=10)
        mock_stripe = mock_stripe_with(build_stripe_subscription(seat_count=10))
        mock_stripe.Subscription.modify.side_effect = stripe.CardError(
            "Your card was declined.", param=None, code="card_declined"
        )
        mock_get_stripe.return_value = mock_stripe

        with pytest.raises(BillingProviderError):
            update_seat_quantity(sub.organization, 12, "monthly")

        sub.refresh_from_db()
        assert sub.seat_limit == 10
        assert sub.pending_seat_limit is None
        assert sub.has_live_claim is False

    @patch("apps.billing.services.get_stripe")
    def test_connection_error_is_unavailable(self, mock_get_stripe: MagicMock) -> None:
        sub = OrganizationSubscriptionFactory.create()
        mock_stripe = mock_stripe_with(build_stripe_subscription())
        mock_stripe.Subscription.modify.side_effect = stripe.APIConnectionError("timeout")
        mock_get_stripe.return_value = mock_stripe

        with pytest.raises(BillingProviderUnavailableError) as exc:
            update_seat_quantity(sub.organization, 12, "monthly")

        assert exc.value.outcome_unknown is True
        assert exc.value.status_code == 503

    @patch("apps.billing.services.get_stripe")
    def test_retrieve_failure_is_provider_error(self, mock_get_stripe: MagicMock) -> None:
        sub = OrganizationSubscriptionFactory.create()
        mock_stripe = mock_stripe_with()
        mock_stripe.Subscription.retrieve.side_effect = stripe.APIConnectionError("timeout")
        mock_get_stripe.return_value = mock_stripe

        with pytest.raises(BillingProviderUnavailableError):
            update_seat_quantity(sub.organization, 12, "monthly")

        sub.refresh_from_db()
        assert sub.pending_seat_limit is None

    @patch("apps.billing.services.get_stripe")
    def test_idempotency_key_passed_to_modify(self, mock_get_stripe: MagicMock) -> None:
        sub = OrganizationSubscriptionFactory.create()
        mock_stripe = mock_stripe_with(build_stripe_subscription())
        mock_get_stripe.return_value = mock_stripe

        update_seat_quantity(sub.organization, 11, "monthly", idempotency_key="req-42")

        assert (
            mock_stripe.Subscription.modify.call_args.kwargs["idempotency_key"]
            == f"seat-update:{sub.organization_id}:req-42"
        )


@pytest.mark.django_db
class TestCancelAndResume:
    @patch("apps.billing.services.get_stripe")
    def test_cancel_at_period_end(self, mock_get_stripe: MagicMock) -> None:
        sub = OrganizationSubscriptionFactory.create()
        mock_stripe = mock_stripe_with()
        mock_get_stripe.return_value = mock_stripe

        cancel_subscription(sub.organization)

        args, kwargs = mock_stripe.Subscription.modify.call_args
        assert args == (sub.stripe_subscription_id,)
        assert kwargs["cancel_at_period_end"] is True
        mock_stripe.Subscription.cancel.assert_not_called()
        sub.refresh_from_db()
        assert sub.status == OrganizationSubscription.Status.ACTIVE

    @patch("apps.billing.services.get_stripe")
    def test_cancel_immediately(self, mock_get_stripe: MagicMock) -> None:
        sub = OrganizationSubscriptionFactory.create()
        mock_stripe = mock_stripe_with()
        mock_get_stripe.return_value = mock_stripe

        cancel_subscription(sub.organization, at_period_end=False, idempotency_key="k")

        mock_stripe.Subscription.cancel.assert_called_once_with(
            sub.stripe_subscription_id, idempotency_key=f"seat-cancel:{sub.organization_id}:k"
        )

    @patch("apps.billing.services.get_stripe")
    def test_cancel_without_subscription(self, mock_get_stripe: MagicMock) -> None:
        with pytest.raises(NoActiveSubscriptionError):
            cancel_subscription(OrganizationFactory.create())

    @patch("apps.billing.services.get_stripe")
    def test_resume(self, mock_get_stripe: MagicMock) -> None:
        sub = OrganizationSubscriptionFactory.create(cancel_at_period_end=True)
        mock_stripe = mock_stripe_with()
        mock_get_stripe.return_value = mock_stripe

        resume_subscription(sub.organization)

        assert mock_stripe.Subscription.modify.call_args.kwargs["cancel_at_period_end"] is False

    @patch("apps.billing.services.get_stripe")
    def test_resume_provider_error(self, mock_get_stripe: MagicMock) -> None:
        sub = OrganizationSubscriptionFactory.create(cancel_at_period_end=True)
        mock_stripe = mock_stripe_with()
        mock_stripe.Subscription.modify.side_effect = stripe.InvalidRequestError(
            "Subscription is canceled", param=None
        )
        mock_get_stripe.return_value = mock_stripe

        with pytest.raises(BillingProviderError):
            resume_subscription(sub.organization)


@pytest.mark.django_db
class TestCustomerPortal:
    @patch("apps.billing.services.get_stripe")
    def test_returns_portal_url(self, mock_get_stripe: MagicMock) -> None:
        sub = OrganizationSubscriptionFactory.create(
            stripe_customer_id="cus_portal", status=OrganizationSubscription.Status.PAST_DUE
        )
        mock_stripe = MagicMock()
        mock_stripe.billing_portal.Session.create.return_value = MagicMock(
            url="https://billing.stripe.com/p/session/test"
        )
        mock_get_stripe.return_value = mock_stripe

        url = create_customer_portal_session(sub.organization, return_url="https://app.test/back")

        assert url == "https://billing.stripe.com/p/session/test"
        mock_stripe.billing_portal.Session.create.assert_called_once_with(
            customer="cus_portal", return_url="https://app.test/back"
        )

    @patch("apps.billing.services.get_stripe")
    def test_default_return_url_uses_site_url(self, mock_get_stripe: MagicMock, settings) -> None:
        settings.SITE_URL = "https://app.example.com"
        sub = OrganizationSubscriptionFactory.create()

        create_customer_portal_session(sub.organization)

        kwargs = mock_get_stripe.return_value.billing_portal.Session.create.call_args.kwargs
        assert kwargs["return_url"] == "https://app.example.com/billing"

    @patch("apps.billing.services.get_stripe")
    def test_canceled_subscription_keeps_customer_access(
        self, mock_get_stripe: MagicMock
    ) -> None:
        sub = OrganizationSubscriptionFactory.create(
            stripe_subscription_id=None, status=OrganizationSubscription.Status.CANCELED
        )

        create_customer_portal_session(sub.organization)

        mock_get_stripe.return_value.billing_portal.Session.create.assert_called_once()

    @patch("apps.billing.services.get_stripe")
    def test_requires_stripe_customer(self, mock_get_stripe: MagicMock) -> None:
        sub = OrganizationSubscriptionFactory.create(unsubscribed=True)

        with pytest.raises(NoBillingCustomerError):
            create_customer_portal_session(sub.organization)

        mock_get_stripe.assert_not_called()

    @patch("apps.billing.services.get_stripe")
    def test_requires_subscription_row(self, mock_get_stripe: MagicMock) -> None:
        with pytest.raises(NoBillingCustomerError):
            create_customer_portal_session(OrganizationFactory.create())

    @patch("apps.billing.services.get_stripe")
    def test_connection_error_is_unavailable(self, mock_get_stripe: MagicMock) -> None:
        sub = OrganizationSubscriptionFactory.create()
        mock_stripe = MagicMock()
        mock_stripe.billing_portal.Session.create.side_effect = stripe.APIConnectionError(
            "timeout"
        )
        mock_get_stripe.return_value = mock_stripe

        with pytest.raises(BillingProviderUnavailableError):
            create_customer_portal_session(sub.organization)
