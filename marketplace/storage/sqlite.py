"""SQLite storage backend for the marketplace core.

Every write runs inside ``BEGIN IMMEDIATE`` so writers are serialized by
SQLite's reserved lock. ``transaction()`` opens one such transaction and
parks its connection on a thread-local; storage calls made while it is
open (on the same thread) reuse that connection, which is how a service
groups several writes into one atomic unit.
"""

import contextlib
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from marketplace.config import get_marketplace_home
from marketplace.errors import DuplicateRecordError, VersionConflictError
from marketplace.jobs.models import JobRequest, JobStateTransition
from marketplace.moderation.models import AdminAction, Complaint
from marketplace.offers.models import Offer
from marketplace.reviews.models import Review
from marketplace.storage.schema import init_db, validate_table_name
from marketplace.types import format_datetime, parse_datetime, utc_now
from marketplace.upgrades.models import UpgradeRequest
from marketplace.users.models import User

logger = logging.getLogger(__name__)

# Columns atomic_update_job_status() may touch besides status
_JOB_UPDATE_COLUMNS = frozenset(
    {"assigned_provider_id", "completion_proof", "assigned_at", "completed_at", "cancelled_at"}
)
_UPGRADE_UPDATE_COLUMNS = frozenset(
    {"admin_explanation", "rejection_comment", "decided_by", "decided_at", "viewed_by_user"}
)


def _to_db(value: Any) -> Any:
    """Convert a Python value to its column representation."""
    if value is None:
        return None
    if hasattr(value, "to_dict"):
        return json.dumps(value.to_dict())
    if hasattr(value, "isoformat"):
        return format_datetime(value)
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return value


def _json_load(raw: Optional[str], default: Any) -> Any:
    if raw is None or raw == "":
        return default
    return json.loads(raw)


class SQLiteStorage:
    """SQLite-backed implementation of MarketplaceStorage."""

    BUSY_TIMEOUT_MS = 5000

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path) if db_path else get_marketplace_home() / "marketplace.db"
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        """Open a connection in autocommit mode; transactions are explicit."""
        conn = sqlite3.connect(
            self.db_path, timeout=self.BUSY_TIMEOUT_MS / 1000, isolation_level=None
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute(f"PRAGMA busy_timeout={self.BUSY_TIMEOUT_MS}")
        return conn

    def _init_db(self):
        with contextlib.closing(self._get_conn()) as conn:
            init_db(conn)

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for a serialized write transaction.

        - Commits on success
        - Rolls back on exception
        - Nested use on the same thread joins the outer transaction
        """
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            yield conn
            return

        conn = self._get_conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error:
            conn.close()
            raise
        self._local.conn = conn
        try:
            yield conn
            conn.execute("COMMIT")
        except Exception as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            self._local.conn = None
            conn.close()

    @contextlib.contextmanager
    def _read(self) -> Iterator[sqlite3.Connection]:
        """Connection for reads: the open transaction's, or a fresh autocommit one."""
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            yield conn
            return
        with contextlib.closing(self._get_conn()) as conn:
            yield conn

    def _insert(self, conn: sqlite3.Connection, table: str, data: Dict[str, Any]) -> None:
        table = validate_table_name(table)
        columns = ", ".join(data)
        placeholders = ", ".join("?" for _ in data)
        try:
            conn.execute(
                f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                [_to_db(v) for v in data.values()],
            )
        except sqlite3.IntegrityError as e:
            raise DuplicateRecordError(table, str(e)) from e

    def _count_by_status(self, table: str) -> Dict[str, int]:
        table = validate_table_name(table)
        with self._read() as conn:
            rows = conn.execute(
                f"SELECT status, COUNT(*) AS n FROM {table} GROUP BY status"
            ).fetchall()
        return {row["status"]: row["n"] for row in rows}

    def close(self):
        """Connections are per-operation; nothing persistent to close."""
        pass

    # === Users ===

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            roles=set(_json_load(row["roles"], [])),
            seeker_profile=_json_load(row["seeker_profile"], None),
            provider_profile=_json_load(row["provider_profile"], None),
            provider_upgrade_status=row["provider_upgrade_status"],
            is_blocked=bool(row["is_blocked"]),
            blocked_reason=row["blocked_reason"],
            rating=row["rating"],
            review_count=row["review_count"],
            total_jobs_completed=row["total_jobs_completed"],
            is_top_rated=bool(row["is_top_rated"]),
            created_at=parse_datetime(row["created_at"]),
            updated_at=parse_datetime(row["updated_at"]),
        )

    def save_user(self, user: User) -> str:
        with self.transaction() as conn:
            self._insert(
                conn,
                "users",
                {
                    "id": user.id,
                    "roles": sorted(user.roles),
                    "seeker_profile": user.seeker_profile,
                    "provider_profile": user.provider_profile,
                    "provider_upgrade_status": user.provider_upgrade_status,
                    "is_blocked": user.is_blocked,
                    "blocked_reason": user.blocked_reason,
                    "rating": user.rating,
                    "review_count": user.review_count,
                    "total_jobs_completed": user.total_jobs_completed,
                    "is_top_rated": user.is_top_rated,
                    "created_at": user.created_at,
                    "updated_at": user.updated_at,
                },
            )
        return user.id

    def get_user(self, user_id: str) -> Optional[User]:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(row) if row else None

    def update_user(self, user: User) -> bool:
        user.updated_at = utc_now()
        with self.transaction() as conn:
            cur = conn.execute(
                """UPDATE users SET roles = ?, seeker_profile = ?, provider_profile = ?,
                   provider_upgrade_status = ?, is_blocked = ?, blocked_reason = ?,
                   updated_at = ?
                   WHERE id = ?""",
                (
                    _to_db(sorted(user.roles)),
                    _to_db(user.seeker_profile),
                    _to_db(user.provider_profile),
                    user.provider_upgrade_status,
                    int(user.is_blocked),
                    user.blocked_reason,
                    _to_db(user.updated_at),
                    user.id,
                ),
            )
        return cur.rowcount > 0

    def update_user_ratings(
        self,
        user_id: str,
        rating: float,
        review_count: int,
        total_jobs_completed: int,
        is_top_rated: bool,
    ) -> bool:
        with self.transaction() as conn:
            cur = conn.execute(
                """UPDATE users SET rating = ?, review_count = ?, total_jobs_completed = ?,
                   is_top_rated = ?, updated_at = ?
                   WHERE id = ?""",
                (
                    rating,
                    review_count,
                    total_jobs_completed,
                    int(is_top_rated),
                    _to_db(utc_now()),
                    user_id,
                ),
            )
        return cur.rowcount > 0

    def block_user(self, user_id: str, reason: Optional[str] = None) -> bool:
        with self.transaction() as conn:
            cur = conn.execute(
                "UPDATE users SET is_blocked = 1, blocked_reason = ?, updated_at = ? WHERE id = ?",
                (reason, _to_db(utc_now()), user_id),
            )
        return cur.rowcount > 0

    def list_users(
        self, role: Optional[str] = None, limit: int = 100, offset: int = 0
    ) -> List[User]:
        query = "SELECT * FROM users"
        params: List[Any] = []
        if role is not None:
            query += " WHERE roles LIKE ?"
            params.append(f'%"{role}"%')
        query += " ORDER BY created_at, rowid LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        with self._read() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_user(r) for r in rows]

    def count_users(self, role: Optional[str] = None) -> int:
        query = "SELECT COUNT(*) FROM users"
        params: List[Any] = []
        if role is not None:
            query += " WHERE roles LIKE ?"
            params.append(f'%"{role}"%')
        with self._read() as conn:
            return conn.execute(query, params).fetchone()[0]

    # === Job requests ===

    def _row_to_job(self, row: sqlite3.Row) -> JobRequest:
        return JobRequest(
            id=row["id"],
            seeker_id=row["seeker_id"],
            title=row["title"],
            description=row["description"],
            category=row["category"],
            budget={"min": row["budget_min"], "max": row["budget_max"]},
            deadline=parse_datetime(row["deadline"]),
            status=row["status"],
            assigned_provider_id=row["assigned_provider_id"],
            attachments=_json_load(row["attachments"], []),
            completion_proof=_json_load(row["completion_proof"], None),
            created_at=parse_datetime(row["created_at"]),
            updated_at=parse_datetime(row["updated_at"]),
            assigned_at=parse_datetime(row["assigned_at"]),
            completed_at=parse_datetime(row["completed_at"]),
            cancelled_at=parse_datetime(row["cancelled_at"]),
        )

    def save_job(self, job: JobRequest) -> str:
        with self.transaction() as conn:
            self._insert(
                conn,
                "job_requests",
                {
                    "id": job.id,
                    "seeker_id": job.seeker_id,
                    "title": job.title,
                    "description": job.description,
                    "category": job.category,
                    "budget_min": job.budget.min,
                    "budget_max": job.budget.max,
                    "deadline": job.deadline,
                    "status": job.status,
                    "assigned_provider_id": job.assigned_provider_id,
                    "attachments": job.attachments,
                    "completion_proof": job.completion_proof,
                    "created_at": job.created_at,
                    "updated_at": job.updated_at,
                    "assigned_at": job.assigned_at,
                    "completed_at": job.completed_at,
                    "cancelled_at": job.cancelled_at,
                },
            )
        return job.id

    def get_job(self, job_id: str) -> Optional[JobRequest]:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM job_requests WHERE id = ?", (job_id,)).fetchone()
        return self._row_to_job(row) if row else None

    def list_jobs(
        self,
        status: Optional[str] = None,
        category: Optional[str] = None,
        seeker_id: Optional[str] = None,
        provider_id: Optional[str] = None,
        min_budget: Optional[float] = None,
        max_budget: Optional[float] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[JobRequest]:
        clauses = []
        params: List[Any] = []
        if status is not None:
            clauses.append("status = ?")
            params.append(getattr(status, "value", status))
        if category is not None:
            clauses.append("category = ?")
            params.append(category)
        if seeker_id is not None:
            clauses.append("seeker_id = ?")
            params.append(seeker_id)
        if provider_id is not None:
            clauses.append("assigned_provider_id = ?")
            params.append(provider_id)
        if min_budget is not None:
            clauses.append("budget_max >= ?")
            params.append(min_budget)
        if max_budget is not None:
            clauses.append("budget_min <= ?")
            params.append(max_budget)

        query = "SELECT * FROM job_requests"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        with self._read() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_job(r) for r in rows]

    def atomic_update_job_status(
        self, job_id: str, expected_status: str, new_status: str, **updates
    ) -> Tuple[Optional[JobRequest], Optional[str]]:
        """Atomically update job status with optimistic locking.

        Uses UPDATE ... WHERE status = expected_status so that of two
        concurrent transitions out of the same state only one can apply.

        Returns:
            Tuple of (updated_job, error).
            - If successful: (job, None)
            - If job not found: (None, "not_found")
            - If status mismatch (race condition): (None, "conflict")
        """
        unknown = set(updates) - _JOB_UPDATE_COLUMNS
        if unknown:
            raise ValueError(f"Unsupported job update fields: {sorted(unknown)}")

        assignments = ["status = ?", "updated_at = ?"]
        params: List[Any] = [new_status, _to_db(utc_now())]
        for column, value in updates.items():
            assignments.append(f"{column} = ?")
            params.append(_to_db(value))
        params.extend([job_id, expected_status])

        with self.transaction() as conn:
            cur = conn.execute(
                f"UPDATE job_requests SET {', '.join(assignments)} "
                "WHERE id = ? AND status = ?",
                params,
            )
            if cur.rowcount == 0:
                exists = conn.execute(
                    "SELECT status FROM job_requests WHERE id = ?", (job_id,)
                ).fetchone()
                if exists is None:
                    return None, "not_found"
                logger.warning(
                    f"Race condition on job {job_id}: expected status {expected_status}, "
                    f"found {exists['status']}"
                )
                return None, "conflict"
            row = conn.execute("SELECT * FROM job_requests WHERE id = ?", (job_id,)).fetchone()
        return self._row_to_job(row), None

    def update_open_job(self, job: JobRequest) -> bool:
        with self.transaction() as conn:
            cur = conn.execute(
                "UPDATE job_requests SET title = ?, description = ?, category = ?, "
                "budget_min = ?, budget_max = ?, deadline = ?, attachments = ?, updated_at = ? "
                "WHERE id = ? AND status = 'open'",
                (
                    job.title,
                    job.description,
                    job.category,
                    job.budget.min,
                    job.budget.max,
                    _to_db(job.deadline),
                    _to_db(job.attachments),
                    _to_db(job.updated_at),
                    job.id,
                ),
            )
        return cur.rowcount > 0

    def delete_job(self, job_id: str) -> bool:
        with self.transaction() as conn:
            cur = conn.execute(
                "DELETE FROM job_requests WHERE id = ? AND status = 'open'", (job_id,)
            )
        return cur.rowcount > 0

    def count_jobs_by_status(self) -> Dict[str, int]:
        return self._count_by_status("job_requests")

    def count_completed_jobs(self, provider_id: str) -> int:
        with self._read() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM job_requests "
                "WHERE assigned_provider_id = ? AND status = 'completed'",
                (provider_id,),
            ).fetchone()[0]

    def save_transition(self, transition: JobStateTransition) -> str:
        with self.transaction() as conn:
            self._insert(
                conn,
                "job_state_transitions",
                {
                    "id": transition.id,
                    "job_id": transition.job_id,
                    "from_status": transition.from_status,
                    "to_status": transition.to_status,
                    "actor_id": transition.actor_id,
                    "metadata": transition.metadata,
                    "created_at": transition.created_at,
                },
            )
        return transition.id

    def get_transitions(self, job_id: str) -> List[JobStateTransition]:
        with self._read() as conn:
            rows = conn.execute(
                "SELECT * FROM job_state_transitions WHERE job_id = ? ORDER BY created_at, rowid",
                (job_id,),
            ).fetchall()
        return [
            JobStateTransition(
                id=r["id"],
                job_id=r["job_id"],
                from_status=r["from_status"],
                to_status=r["to_status"],
                actor_id=r["actor_id"],
                metadata=_json_load(r["metadata"], {}),
                created_at=parse_datetime(r["created_at"]),
            )
            for r in rows
        ]

    # === Offers ===

    def _row_to_offer(self, row: sqlite3.Row) -> Offer:
        return Offer(
            id=row["id"],
            job_request_id=row["job_request_id"],
            provider_id=row["provider_id"],
            budget=row["budget"],
            message=row["message"],
            estimated_days=row["estimated_days"],
            status=row["status"],
            created_at=parse_datetime(row["created_at"]),
            updated_at=parse_datetime(row["updated_at"]),
        )

    def save_offer(self, offer: Offer) -> str:
        with self.transaction() as conn:
            self._insert(
                conn,
                "offers",
                {
                    "id": offer.id,
                    "job_request_id": offer.job_request_id,
                    "provider_id": offer.provider_id,
                    "budget": offer.budget,
                    "message": offer.message,
                    "estimated_days": offer.estimated_days,
                    "status": offer.status,
                    "created_at": offer.created_at,
                    "updated_at": offer.updated_at,
                },
            )
        return offer.id

    def get_offer(self, offer_id: str) -> Optional[Offer]:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM offers WHERE id = ?", (offer_id,)).fetchone()
        return self._row_to_offer(row) if row else None

    def list_offers(
        self,
        job_id: Optional[str] = None,
        provider_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: Optional[int] = 100,
    ) -> List[Offer]:
        clauses = []
        params: List[Any] = []
        if job_id is not None:
            clauses.append("job_request_id = ?")
            params.append(job_id)
        if provider_id is not None:
            clauses.append("provider_id = ?")
            params.append(provider_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(getattr(status, "value", status))
        query = "SELECT * FROM offers"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at, rowid"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        with self._read() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_offer(r) for r in rows]

    def update_offer_status(self, offer_id: str, expected_status: str, new_status: str) -> bool:
        with self.transaction() as conn:
            try:
                cur = conn.execute(
                    "UPDATE offers SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
                    (new_status, _to_db(utc_now()), offer_id, expected_status),
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateRecordError("offers", str(e)) from e
        return cur.rowcount > 0

    def reject_pending_offers(
        self, job_id: str, exclude_offer_id: Optional[str] = None
    ) -> List[Offer]:
        with self.transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM offers WHERE job_request_id = ? AND status = 'pending' "
                "AND id != ? ORDER BY created_at, rowid",
                (job_id, exclude_offer_id or ""),
            ).fetchall()
            if not rows:
                return []
            now = _to_db(utc_now())
            conn.executemany(
                "UPDATE offers SET status = 'rejected', updated_at = ? "
                "WHERE id = ? AND status = 'pending'",
                [(now, r["id"]) for r in rows],
            )
        rejected = []
        for r in rows:
            offer = self._row_to_offer(r)
            offer.status = "rejected"
            rejected.append(offer)
        return rejected

    def update_pending_offer(self, offer: Offer) -> bool:
        with self.transaction() as conn:
            cur = conn.execute(
                "UPDATE offers SET budget = ?, message = ?, estimated_days = ?, updated_at = ? "
                "WHERE id = ? AND status = 'pending'",
                (
                    offer.budget,
                    offer.message,
                    offer.estimated_days,
                    _to_db(offer.updated_at),
                    offer.id,
                ),
            )
        return cur.rowcount > 0

    def delete_pending_offer(self, offer_id: str) -> bool:
        with self.transaction() as conn:
            cur = conn.execute(
                "DELETE FROM offers WHERE id = ? AND status = 'pending'", (offer_id,)
            )
        return cur.rowcount > 0

    def delete_offers_for_job(self, job_id: str) -> int:
        with self.transaction() as conn:
            cur = conn.execute("DELETE FROM offers WHERE job_request_id = ?", (job_id,))
        return cur.rowcount

    # === Reviews ===

    def _row_to_review(self, row: sqlite3.Row) -> Review:
        return Review(
            id=row["id"],
            reviewer_id=row["reviewer_id"],
            reviewed_user_id=row["reviewed_user_id"],
            job_request_id=row["job_request_id"],
            role=row["role"],
            rating=row["rating"],
            comment=row["comment"],
            created_at=parse_datetime(row["created_at"]),
        )

    def save_review(self, review: Review) -> str:
        with self.transaction() as conn:
            self._insert(
                conn,
                "reviews",
                {
                    "id": review.id,
                    "reviewer_id": review.reviewer_id,
                    "reviewed_user_id": review.reviewed_user_id,
                    "job_request_id": review.job_request_id,
                    "role": review.role,
                    "rating": review.rating,
                    "comment": review.comment,
                    "created_at": review.created_at,
                },
            )
        return review.id

    def get_review(
        self, reviewer_id: str, reviewed_user_id: str, job_id: str
    ) -> Optional[Review]:
        with self._read() as conn:
            row = conn.execute(
                "SELECT * FROM reviews WHERE reviewer_id = ? AND reviewed_user_id = ? "
                "AND job_request_id = ?",
                (reviewer_id, reviewed_user_id, job_id),
            ).fetchone()
        return self._row_to_review(row) if row else None

    def list_reviews(
        self,
        reviewed_user_id: Optional[str] = None,
        reviewer_id: Optional[str] = None,
        job_id: Optional[str] = None,
        role: Optional[str] = None,
        limit: Optional[int] = 100,
    ) -> List[Review]:
        clauses = []
        params: List[Any] = []
        if reviewed_user_id is not None:
            clauses.append("reviewed_user_id = ?")
            params.append(reviewed_user_id)
        if reviewer_id is not None:
            clauses.append("reviewer_id = ?")
            params.append(reviewer_id)
        if job_id is not None:
            clauses.append("job_request_id = ?")
            params.append(job_id)
        if role is not None:
            clauses.append("role = ?")
            params.append(getattr(role, "value", role))
        query = "SELECT * FROM reviews"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at DESC, rowid DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        with self._read() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_review(r) for r in rows]

    def get_review_aggregate(self, user_id: str) -> Tuple[float, int]:
        with self._read() as conn:
            row = conn.execute(
                "SELECT AVG(rating) AS avg_rating, COUNT(*) AS n FROM reviews "
                "WHERE reviewed_user_id = ?",
                (user_id,),
            ).fetchone()
        return float(row["avg_rating"] or 0.0), int(row["n"])

    # === Complaints ===

    def _row_to_complaint(self, row: sqlite3.Row) -> Complaint:
        return Complaint(
            id=row["id"],
            reporter_id=row["reporter_id"],
            reported_user_id=row["reported_user_id"],
            job_request_id=row["job_request_id"],
            problem_type=row["problem_type"],
            description=row["description"],
            status=row["status"],
            admin_action=row["admin_action"],
            admin_notes=row["admin_notes"],
            resolved_at=parse_datetime(row["resolved_at"]),
            created_at=parse_datetime(row["created_at"]),
            updated_at=parse_datetime(row["updated_at"]),
            version=row["version"],
        )

    def save_complaint(self, complaint: Complaint) -> str:
        with self.transaction() as conn:
            self._insert(
                conn,
                "complaints",
                {
                    "id": complaint.id,
                    "reporter_id": complaint.reporter_id,
                    "reported_user_id": complaint.reported_user_id,
                    "job_request_id": complaint.job_request_id,
                    "problem_type": complaint.problem_type,
                    "description": complaint.description,
                    "status": complaint.status,
                    "admin_action": complaint.admin_action,
                    "admin_notes": complaint.admin_notes,
                    "resolved_at": complaint.resolved_at,
                    "created_at": complaint.created_at,
                    "updated_at": complaint.updated_at,
                    "version": complaint.version,
                },
            )
        return complaint.id

    def get_complaint(self, complaint_id: str) -> Optional[Complaint]:
        with self._read() as conn:
            row = conn.execute(
                "SELECT * FROM complaints WHERE id = ?", (complaint_id,)
            ).fetchone()
        return self._row_to_complaint(row) if row else None

    def list_complaints(
        self,
        status: Optional[str] = None,
        reporter_id: Optional[str] = None,
        reported_user_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Complaint]:
        clauses = []
        params: List[Any] = []
        if status is not None:
            clauses.append("status = ?")
            params.append(getattr(status, "value", status))
        if reporter_id is not None:
            clauses.append("reporter_id = ?")
            params.append(reporter_id)
        if reported_user_id is not None:
            clauses.append("reported_user_id = ?")
            params.append(reported_user_id)
        query = "SELECT * FROM complaints"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        with self._read() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_complaint(r) for r in rows]

    def update_complaint(self, complaint: Complaint, expected_version: int) -> bool:
        new_version = expected_version + 1
        now = utc_now()
        with self.transaction() as conn:
            try:
                cur = conn.execute(
                    """UPDATE complaints SET status = ?, admin_action = ?, admin_notes = ?,
                       resolved_at = ?, updated_at = ?, version = ?
                       WHERE id = ? AND version = ?""",
                    (
                        complaint.status,
                        complaint.admin_action,
                        complaint.admin_notes,
                        _to_db(complaint.resolved_at),
                        _to_db(now),
                        new_version,
                        complaint.id,
                        expected_version,
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateRecordError("complaints", str(e)) from e
            if cur.rowcount == 0:
                row = conn.execute(
                    "SELECT version FROM complaints WHERE id = ?", (complaint.id,)
                ).fetchone()
                if row is None:
                    return False
                raise VersionConflictError(
                    "complaints", complaint.id, expected_version, row["version"]
                )
        complaint.version = new_version
        complaint.updated_at = now
        return True

    def count_complaints_by_status(self) -> Dict[str, int]:
        return self._count_by_status("complaints")

    def save_admin_action(self, action: AdminAction) -> str:
        with self.transaction() as conn:
            self._insert(
                conn,
                "admin_actions",
                {
                    "id": action.id,
                    "complaint_id": action.complaint_id,
                    "admin_id": action.admin_id,
                    "action_type": action.action_type,
                    "previous_status": action.previous_status,
                    "new_status": action.new_status,
                    "previous_admin_action": action.previous_admin_action,
                    "new_admin_action": action.new_admin_action,
                    "notes": action.notes,
                    "ip_address": action.ip_address,
                    "user_agent": action.user_agent,
                    "created_at": action.created_at,
                },
            )
        return action.id

    def list_admin_actions(self, complaint_id: str) -> List[AdminAction]:
        with self._read() as conn:
            rows = conn.execute(
                "SELECT * FROM admin_actions WHERE complaint_id = ? ORDER BY created_at, rowid",
                (complaint_id,),
            ).fetchall()
        return [
            AdminAction(
                id=r["id"],
                complaint_id=r["complaint_id"],
                admin_id=r["admin_id"],
                action_type=r["action_type"],
                previous_status=r["previous_status"],
                new_status=r["new_status"],
                previous_admin_action=r["previous_admin_action"],
                new_admin_action=r["new_admin_action"],
                notes=r["notes"],
                ip_address=r["ip_address"],
                user_agent=r["user_agent"],
                created_at=parse_datetime(r["created_at"]),
            )
            for r in rows
        ]

    # === Upgrade requests ===

    def _row_to_upgrade(self, row: sqlite3.Row) -> UpgradeRequest:
        return UpgradeRequest(
            id=row["id"],
            user_id=row["user_id"],
            attachments=_json_load(row["attachments"], []),
            comment=row["comment"],
            status=row["status"],
            admin_explanation=row["admin_explanation"],
            rejection_comment=row["rejection_comment"],
            viewed_by_user=bool(row["viewed_by_user"]),
            decided_by=row["decided_by"],
            decided_at=parse_datetime(row["decided_at"]),
            created_at=parse_datetime(row["created_at"]),
            updated_at=parse_datetime(row["updated_at"]),
        )

    def save_upgrade_request(self, request: UpgradeRequest) -> str:
        with self.transaction() as conn:
            self._insert(
                conn,
                "upgrade_requests",
                {
                    "id": request.id,
                    "user_id": request.user_id,
                    "attachments": request.attachments,
                    "comment": request.comment,
                    "status": request.status,
                    "admin_explanation": request.admin_explanation,
                    "rejection_comment": request.rejection_comment,
                    "viewed_by_user": request.viewed_by_user,
                    "decided_by": request.decided_by,
                    "decided_at": request.decided_at,
                    "created_at": request.created_at,
                    "updated_at": request.updated_at,
                },
            )
        return request.id

    def get_upgrade_request(self, request_id: str) -> Optional[UpgradeRequest]:
        with self._read() as conn:
            row = conn.execute(
                "SELECT * FROM upgrade_requests WHERE id = ?", (request_id,)
            ).fetchone()
        return self._row_to_upgrade(row) if row else None

    def list_upgrade_requests(
        self,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[UpgradeRequest]:
        clauses = []
        params: List[Any] = []
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(getattr(status, "value", status))
        query = "SELECT * FROM upgrade_requests"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        with self._read() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_upgrade(r) for r in rows]

    def count_upgrade_requests(self, user_id: str) -> int:
        with self._read() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM upgrade_requests WHERE user_id = ?", (user_id,)
            ).fetchone()[0]

    def atomic_update_upgrade_status(
        self, request_id: str, expected_status: str, new_status: str, **updates
    ) -> bool:
        unknown = set(updates) - _UPGRADE_UPDATE_COLUMNS
        if unknown:
            raise ValueError(f"Unsupported upgrade request update fields: {sorted(unknown)}")

        assignments = ["status = ?", "updated_at = ?"]
        params: List[Any] = [new_status, _to_db(utc_now())]
        for column, value in updates.items():
            assignments.append(f"{column} = ?")
            params.append(_to_db(value))
        params.extend([request_id, expected_status])

        with self.transaction() as conn:
            try:
                cur = conn.execute(
                    f"UPDATE upgrade_requests SET {', '.join(assignments)} "
                    "WHERE id = ? AND status = ?",
                    params,
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateRecordError("upgrade_requests", str(e)) from e
        return cur.rowcount > 0

    def mark_upgrade_requests_viewed(self, user_id: str) -> int:
        with self.transaction() as conn:
            cur = conn.execute(
                "UPDATE upgrade_requests SET viewed_by_user = 1, updated_at = ? "
                "WHERE user_id = ? AND status != 'pending' AND viewed_by_user = 0",
                (_to_db(utc_now()), user_id),
            )
        return cur.rowcount

    def count_upgrade_requests_by_status(self) -> Dict[str, int]:
        return self._count_by_status("upgrade_requests")
