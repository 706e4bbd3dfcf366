"""Tests for the SQLite storage backend.

Covers schema guarantees (unique indexes, append-only audit log) and the
serialized write path under concurrent callers.
"""

import sqlite3
import threading
from datetime import datetime, timedelta, timezone

import pytest

from marketplace.errors import ConflictError, DuplicateRecordError, VersionConflictError
from marketplace.storage import SCHEMA_VERSION, SQLiteStorage, validate_table_name


def run_concurrently(*targets):
    """Start every target at the same moment; return (results, errors) in call order."""
    barrier = threading.Barrier(len(targets))
    results = [None] * len(targets)
    errors = [None] * len(targets)

    def runner(index, fn):
        barrier.wait()
        try:
            results[index] = fn()
        except Exception as e:  # collected for assertions
            errors[index] = e

    threads = [threading.Thread(target=runner, args=(i, fn)) for i, fn in enumerate(targets)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return results, errors


class TestSchema:
    """Tests for schema setup and guards."""

    def test_schema_version_recorded(self, storage):
        with sqlite3.connect(storage.db_path) as conn:
            (version,) = conn.execute("SELECT version FROM schema_version").fetchone()
        assert version == SCHEMA_VERSION

    def test_reopen_existing_database(self, storage, seeker):
        reopened = SQLiteStorage(storage.db_path)
        assert reopened.get_user(seeker.id).id == seeker.id

    def test_table_allowlist(self):
        assert validate_table_name("offers") == "offers"
        with pytest.raises(ValueError, match="Invalid table name"):
            validate_table_name("offers; DROP TABLE users")

    def test_admin_actions_append_only(
        self, marketplace, storage, assigned_job, seeker, provider, admin
    ):
        """The audit table rejects updates and deletes at the database level."""
        complaint = marketplace.moderation.file(
            seeker.id, provider.id, assigned_job.id, "late", "Late again"
        )
        marketplace.moderation.act(complaint.id, admin, status="investigating")

        with sqlite3.connect(storage.db_path) as conn:
            with pytest.raises(sqlite3.DatabaseError, match="append-only"):
                conn.execute("UPDATE admin_actions SET notes = 'rewritten'")
            with pytest.raises(sqlite3.DatabaseError, match="append-only"):
                conn.execute("DELETE FROM admin_actions")
        assert len(marketplace.moderation.get_actions(complaint.id)) == 1

    def test_one_accepted_offer_per_job(self, marketplace, storage, post_job, provider, provider2):
        """The partial unique index refuses a second accepted offer."""
        job = post_job()
        first = marketplace.offers.submit(job.id, provider.id, 300)
        second = marketplace.offers.submit(job.id, provider2.id, 400)

        assert storage.update_offer_status(first.id, "pending", "accepted")
        with pytest.raises(DuplicateRecordError):
            storage.update_offer_status(second.id, "pending", "accepted")
        assert storage.get_offer(second.id).status == "pending"

    def test_update_offer_status_is_conditional(self, marketplace, storage, post_job, provider):
        job = post_job()
        offer = marketplace.offers.submit(job.id, provider.id, 300)
        assert storage.update_offer_status(offer.id, "pending", "rejected")
        assert not storage.update_offer_status(offer.id, "pending", "accepted")

    def test_job_check_constraint(self, storage, post_job):
        """A job cannot be marked assigned without a provider, even bypassing the model."""
        job = post_job()
        with sqlite3.connect(storage.db_path) as conn:
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute("UPDATE job_requests SET status = 'assigned' WHERE id = ?", (job.id,))


class TestTransactions:
    """Tests for the transaction context manager."""

    def test_rollback_on_error(self, storage, seeker):
        """Writes inside a failed transaction are discarded together."""
        with pytest.raises(RuntimeError):
            with storage.transaction():
                storage.block_user(seeker.id, reason="temp")
                raise RuntimeError("boom")
        assert not storage.get_user(seeker.id).is_blocked

    def test_nested_joins_outer(self, storage, seeker, provider):
        with pytest.raises(RuntimeError):
            with storage.transaction():
                storage.block_user(seeker.id)
                with storage.transaction():
                    storage.block_user(provider.id)
                raise RuntimeError("boom")
        assert not storage.get_user(seeker.id).is_blocked
        assert not storage.get_user(provider.id).is_blocked

    def test_atomic_update_job_status(self, storage, post_job):
        job = post_job()
        updated, error = storage.atomic_update_job_status(
            job.id, "open", "cancelled", cancelled_at=job.created_at
        )
        assert error is None
        assert updated.status == "cancelled"

        assert storage.atomic_update_job_status(job.id, "open", "cancelled") == (None, "conflict")
        assert storage.atomic_update_job_status("missing", "open", "cancelled") == (
            None,
            "not_found",
        )

    def test_atomic_update_rejects_unknown_columns(self, storage, post_job):
        job = post_job()
        with pytest.raises(ValueError, match="Unsupported job update fields"):
            storage.atomic_update_job_status(job.id, "open", "cancelled", seeker_id="x")

    def test_complaint_version_guard(self, marketplace, storage, assigned_job, seeker, provider):
        complaint = marketplace.moderation.file(
            seeker.id, provider.id, assigned_job.id, "late", "Late"
        )
        complaint.admin_notes = "first"
        assert storage.update_complaint(complaint, expected_version=1)
        complaint.admin_notes = "stale"
        with pytest.raises(VersionConflictError):
            storage.update_complaint(complaint, expected_version=1)


class TestConcurrency:
    """Concurrent callers against one database file."""

    def test_concurrent_assign_exactly_one_wins(
        self, marketplace, post_job, seeker, provider, provider2
    ):
        """Two assigns on the same job: one succeeds, the other conflicts."""
        job = post_job()
        offer_a = marketplace.offers.submit(job.id, provider.id, 300)
        offer_b = marketplace.offers.submit(job.id, provider2.id, 450)

        results, errors = run_concurrently(
            lambda: marketplace.jobs.assign(job.id, offer_a.id, seeker.id),
            lambda: marketplace.jobs.assign(job.id, offer_b.id, seeker.id),
        )

        winners = [r for r in results if r is not None]
        assert len(winners) == 1
        assert sum(isinstance(e, ConflictError) for e in errors) == 1

        statuses = sorted(o.status for o in marketplace.offers.list_for(job.id))
        assert statuses == ["accepted", "rejected"]
        final = marketplace.jobs.get(job.id)
        assert final.assigned_provider_id == winners[0].assigned_provider_id
        assert [t.to_status for t in marketplace.jobs.get_history(job.id)] == [
            "open",
            "assigned",
        ]

    def test_concurrent_upgrade_requests(self, marketplace, seeker):
        """Only one of two simultaneous upgrade requests is stored."""
        attachments = ["https://files.example/license.pdf"]
        results, errors = run_concurrently(
            lambda: marketplace.upgrades.request(seeker.id, attachments),
            lambda: marketplace.upgrades.request(seeker.id, attachments),
        )

        assert sum(r is not None for r in results) == 1
        assert sum(isinstance(e, ConflictError) for e in errors) == 1
        assert len(marketplace.upgrades.list_for_user(seeker.id)) == 1

    def test_concurrent_reviews_keep_count_exact(self, marketplace, seeker, provider):
        """Recomputing from the reviews table cannot lose a concurrent update."""
        deadline = datetime.now(timezone.utc) + timedelta(days=3)
        jobs = []
        for _ in range(4):
            job = marketplace.jobs.create(
                seeker.id, "Hang shelves", "", "repairs", 10, 100, deadline
            )
            offer = marketplace.offers.submit(job.id, provider.id, 50)
            marketplace.jobs.assign(job.id, offer.id, seeker.id)
            marketplace.jobs.complete(job.id, provider.id)
            jobs.append(job)

        results, errors = run_concurrently(
            *[lambda j=j: marketplace.reviews.submit(j.id, seeker.id, 4) for j in jobs]
        )

        assert errors == [None] * 4
        user = marketplace.users.get(provider.id)
        assert user.review_count == 4
        assert user.rating == 4.0
