"""Tests for the seeker-to-provider upgrade workflow."""

import pytest

from marketplace.config import MarketplaceConfig
from marketplace.core import Marketplace
from marketplace.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from marketplace.events import InMemoryEventPublisher, MarketplaceEventType
from marketplace.types import Actor

ATTACHMENTS = ["https://files.example/license.pdf"]


class TestRequestUpgrade:
    """Tests for submitting upgrade requests."""

    def test_request(self, marketplace, seeker):
        request = marketplace.upgrades.request(seeker.id, ATTACHMENTS, "Licensed plumber")

        assert request.status == "pending"
        assert request.attachments == ATTACHMENTS
        assert request.comment == "Licensed plumber"
        assert not request.viewed_by_user
        assert marketplace.users.get(seeker.id).provider_upgrade_status == "pending"

    def test_attachments_required(self, marketplace, seeker):
        with pytest.raises(ValidationError, match="At least one attachment"):
            marketplace.upgrades.request(seeker.id, [])

    def test_blank_attachment(self, marketplace, seeker):
        with pytest.raises(ValidationError, match="non-empty URLs"):
            marketplace.upgrades.request(seeker.id, ["  "])

    def test_one_pending_at_a_time(self, marketplace, seeker):
        marketplace.upgrades.request(seeker.id, ATTACHMENTS)
        with pytest.raises(ConflictError, match="pending upgrade request"):
            marketplace.upgrades.request(seeker.id, ATTACHMENTS)
        assert len(marketplace.upgrades.list_for_user(seeker.id)) == 1

    def test_provider_cannot_request(self, marketplace, provider):
        with pytest.raises(ConflictError, match="already a provider"):
            marketplace.upgrades.request(provider.id, ATTACHMENTS)

    def test_unknown_user(self, marketplace):
        with pytest.raises(NotFoundError):
            marketplace.upgrades.request("ghost", ATTACHMENTS)

    def test_lifetime_cap(self, marketplace, seeker, admin):
        """Three attempts in total; the fourth is refused even after rejections."""
        for _ in range(3):
            request = marketplace.upgrades.request(seeker.id, ATTACHMENTS)
            marketplace.upgrades.reject(request.id, admin, "Need more documents")

        with pytest.raises(ConflictError, match="Maximum of 3 upgrade requests reached"):
            marketplace.upgrades.request(seeker.id, ATTACHMENTS)
        assert len(marketplace.upgrades.list_for_user(seeker.id)) == 3

    def test_cap_is_configurable(self, storage, admin):
        m = Marketplace(
            storage=storage,
            config=MarketplaceConfig(max_upgrade_requests=1),
            publisher=InMemoryEventPublisher(),
        )
        m.users.register("solo", ["seeker"])
        request = m.upgrades.request("solo", ATTACHMENTS)
        m.upgrades.reject(request.id, admin)
        with pytest.raises(ConflictError, match="Maximum of 1"):
            m.upgrades.request("solo", ATTACHMENTS)


class TestDecideUpgrade:
    """Tests for admin decisions."""

    def test_accept_grants_provider_role(self, marketplace, seeker, admin, publisher, post_job):
        request = marketplace.upgrades.request(seeker.id, ATTACHMENTS)
        accepted = marketplace.upgrades.accept(request.id, admin, "Documents check out")

        assert accepted.status == "accepted"
        assert accepted.admin_explanation == "Documents check out"
        assert accepted.decided_by == admin.actor_id
        assert accepted.decided_at is not None

        user = marketplace.users.get(seeker.id)
        assert user.is_provider
        assert user.provider_profile is not None
        assert user.provider_upgrade_status == "accepted"

        events = publisher.of_type(MarketplaceEventType.UPGRADE_DECIDED)
        assert [(e.recipient_id, e.payload["status"]) for e in events] == [
            (seeker.id, "accepted")
        ]

        # The new provider can bid on someone else's job
        marketplace.users.register("seeker-2", ["seeker"])
        job = post_job(seeker_id="seeker-2")
        assert marketplace.offers.submit(job.id, seeker.id, 200).status == "pending"

    def test_accept_requires_explanation(self, marketplace, seeker, admin):
        request = marketplace.upgrades.request(seeker.id, ATTACHMENTS)
        with pytest.raises(ValidationError, match="explanation is required"):
            marketplace.upgrades.accept(request.id, admin, "  ")
        assert marketplace.upgrades.get(request.id).status == "pending"

    def test_accept_twice_conflicts(self, marketplace, seeker, admin):
        request = marketplace.upgrades.request(seeker.id, ATTACHMENTS)
        marketplace.upgrades.accept(request.id, admin, "ok")
        with pytest.raises(ConflictError, match="already accepted"):
            marketplace.upgrades.accept(request.id, admin, "ok again")

    def test_reject(self, marketplace, seeker, admin, publisher):
        request = marketplace.upgrades.request(seeker.id, ATTACHMENTS)
        rejected = marketplace.upgrades.reject(request.id, admin, "Blurry scan")

        assert rejected.status == "rejected"
        assert rejected.rejection_comment == "Blurry scan"
        user = marketplace.users.get(seeker.id)
        assert not user.is_provider
        assert user.provider_upgrade_status == "rejected"
        assert len(publisher.of_type(MarketplaceEventType.UPGRADE_DECIDED)) == 1

    def test_reject_twice_conflicts(self, marketplace, seeker, admin):
        request = marketplace.upgrades.request(seeker.id, ATTACHMENTS)
        marketplace.upgrades.reject(request.id, admin)
        with pytest.raises(ConflictError, match="already rejected"):
            marketplace.upgrades.reject(request.id, admin)

    def test_reject_after_accept_keeps_role(self, marketplace, seeker, admin):
        """Reversing a decision does not take the provider role away."""
        request = marketplace.upgrades.request(seeker.id, ATTACHMENTS)
        marketplace.upgrades.accept(request.id, admin, "ok")
        marketplace.upgrades.reject(request.id, admin, "changed my mind")

        user = marketplace.users.get(seeker.id)
        assert user.is_provider
        assert user.provider_upgrade_status == "rejected"

    def test_accept_after_reject(self, marketplace, seeker, admin):
        request = marketplace.upgrades.request(seeker.id, ATTACHMENTS)
        marketplace.upgrades.reject(request.id, admin)
        marketplace.upgrades.accept(request.id, admin, "second look")
        assert marketplace.users.get(seeker.id).is_provider

    def test_non_admin_forbidden(self, marketplace, seeker):
        request = marketplace.upgrades.request(seeker.id, ATTACHMENTS)
        caller = Actor(seeker.id, frozenset({"seeker"}))
        with pytest.raises(ForbiddenError):
            marketplace.upgrades.accept(request.id, caller, "self-approved")
        with pytest.raises(ForbiddenError):
            marketplace.upgrades.reject(request.id, caller)

    def test_missing_request(self, marketplace, admin):
        with pytest.raises(NotFoundError, match="Upgrade request not found"):
            marketplace.upgrades.accept("missing", admin, "ok")


class TestUpgradeQueries:
    """Tests for listing and acknowledging upgrade requests."""

    def test_mark_viewed_only_touches_decided(self, marketplace, seeker, admin):
        first = marketplace.upgrades.request(seeker.id, ATTACHMENTS)
        marketplace.upgrades.reject(first.id, admin)
        marketplace.upgrades.request(seeker.id, ATTACHMENTS)

        assert marketplace.upgrades.mark_viewed(seeker.id) == 1
        assert marketplace.upgrades.mark_viewed(seeker.id) == 0

        by_status = {r.status: r for r in marketplace.upgrades.list_for_user(seeker.id)}
        assert by_status["rejected"].viewed_by_user
        assert not by_status["pending"].viewed_by_user

    def test_new_decision_resets_viewed(self, marketplace, seeker, admin):
        request = marketplace.upgrades.request(seeker.id, ATTACHMENTS)
        marketplace.upgrades.reject(request.id, admin)
        marketplace.upgrades.mark_viewed(seeker.id)
        decided = marketplace.upgrades.accept(request.id, admin, "ok")
        assert not decided.viewed_by_user

    def test_list_requests_by_status(self, marketplace, seeker, admin):
        marketplace.users.register("seeker-2", ["seeker"])
        first = marketplace.upgrades.request(seeker.id, ATTACHMENTS)
        second = marketplace.upgrades.request("seeker-2", ATTACHMENTS)
        marketplace.upgrades.accept(first.id, admin, "ok")

        assert [r.id for r in marketplace.upgrades.list_requests(status="pending")] == [
            second.id
        ]
        assert [r.id for r in marketplace.upgrades.list_requests()] == [second.id, first.id]

    def test_list_invalid_status(self, marketplace):
        with pytest.raises(ValidationError, match="Invalid upgrade request status"):
            marketplace.upgrades.list_requests(status="maybe")
