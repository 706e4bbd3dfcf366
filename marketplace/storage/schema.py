"""Database schema for marketplace SQLite storage.

Contains:
- Schema DDL (SCHEMA)
- Schema version tracking (SCHEMA_VERSION)
- Table allowlist (ALLOWED_TABLES, validate_table_name)
- Database initialization (init_db)

Uniqueness rules live here, not in application pre-checks:
- one offer per (provider, job)
- at most one accepted offer per job
- one review per (reviewer, reviewed user, job)
- one active complaint per (reporter, job)
- one pending upgrade request per user
"""

import logging
import sqlite3

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

ALLOWED_TABLES = frozenset(
    {
        "schema_version",
        "users",
        "job_requests",
        "job_state_transitions",
        "offers",
        "reviews",
        "complaints",
        "admin_actions",
        "upgrade_requests",
    }
)


def validate_table_name(table: str) -> str:
    """Validate table name against allowlist to prevent SQL injection.

    Raises:
        ValueError: If table name is not in allowlist
    """
    if table not in ALLOWED_TABLES:
        raise ValueError(f"Invalid table name: {table}")
    return table


SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    roles TEXT NOT NULL DEFAULT '[]',
    seeker_profile TEXT,
    provider_profile TEXT,
    provider_upgrade_status TEXT NOT NULL DEFAULT 'none',
    is_blocked INTEGER NOT NULL DEFAULT 0,
    blocked_reason TEXT,
    rating REAL NOT NULL DEFAULT 0,
    review_count INTEGER NOT NULL DEFAULT 0,
    total_jobs_completed INTEGER NOT NULL DEFAULT 0,
    is_top_rated INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS job_requests (
    id TEXT PRIMARY KEY,
    seeker_id TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    category TEXT NOT NULL,
    budget_min REAL NOT NULL,
    budget_max REAL NOT NULL,
    deadline TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'open'
        CHECK (status IN ('open', 'assigned', 'completed', 'cancelled')),
    assigned_provider_id TEXT,
    attachments TEXT NOT NULL DEFAULT '[]',
    completion_proof TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    assigned_at TEXT,
    completed_at TEXT,
    cancelled_at TEXT,
    CHECK ((assigned_provider_id IS NOT NULL) = (status IN ('assigned', 'completed'))),
    CHECK (budget_min >= 0 AND budget_min <= budget_max)
);
CREATE INDEX IF NOT EXISTS idx_job_requests_seeker ON job_requests(seeker_id);
CREATE INDEX IF NOT EXISTS idx_job_requests_status ON job_requests(status);
CREATE INDEX IF NOT EXISTS idx_job_requests_provider ON job_requests(assigned_provider_id);

CREATE TABLE IF NOT EXISTS job_state_transitions (
    id TEXT PRIMARY KEY,
    job_id TEXT NOT NULL,
    from_status TEXT,
    to_status TEXT NOT NULL,
    actor_id TEXT NOT NULL,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_job_transitions_job ON job_state_transitions(job_id);

CREATE TABLE IF NOT EXISTS offers (
    id TEXT PRIMARY KEY,
    job_request_id TEXT NOT NULL,
    provider_id TEXT NOT NULL,
    budget REAL NOT NULL CHECK (budget >= 0),
    message TEXT NOT NULL DEFAULT '',
    estimated_days INTEGER NOT NULL DEFAULT 1,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'accepted', 'rejected')),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (provider_id, job_request_id)
);
CREATE INDEX IF NOT EXISTS idx_offers_job ON offers(job_request_id);
CREATE UNIQUE INDEX IF NOT EXISTS idx_offers_one_accepted
    ON offers(job_request_id) WHERE status = 'accepted';

CREATE TABLE IF NOT EXISTS reviews (
    id TEXT PRIMARY KEY,
    reviewer_id TEXT NOT NULL,
    reviewed_user_id TEXT NOT NULL,
    job_request_id TEXT NOT NULL,
    role TEXT NOT NULL CHECK (role IN ('seeker', 'provider')),
    rating INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
    comment TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    UNIQUE (reviewer_id, reviewed_user_id, job_request_id)
);
CREATE INDEX IF NOT EXISTS idx_reviews_reviewed ON reviews(reviewed_user_id);

CREATE TABLE IF NOT EXISTS complaints (
    id TEXT PRIMARY KEY,
    reporter_id TEXT NOT NULL,
    reported_user_id TEXT NOT NULL,
    job_request_id TEXT NOT NULL,
    problem_type TEXT NOT NULL,
    description TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    admin_action TEXT NOT NULL DEFAULT 'none',
    admin_notes TEXT NOT NULL DEFAULT '',
    resolved_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    version INTEGER NOT NULL DEFAULT 1,
    CHECK (reporter_id != reported_user_id)
);
CREATE INDEX IF NOT EXISTS idx_complaints_status ON complaints(status);
CREATE UNIQUE INDEX IF NOT EXISTS idx_complaints_one_active
    ON complaints(reporter_id, job_request_id)
    WHERE status IN ('pending', 'investigating');

CREATE TABLE IF NOT EXISTS admin_actions (
    id TEXT PRIMARY KEY,
    complaint_id TEXT NOT NULL,
    admin_id TEXT NOT NULL,
    action_type TEXT NOT NULL,
    previous_status TEXT NOT NULL,
    new_status TEXT NOT NULL,
    previous_admin_action TEXT NOT NULL,
    new_admin_action TEXT NOT NULL,
    notes TEXT NOT NULL DEFAULT '',
    ip_address TEXT,
    user_agent TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_admin_actions_complaint ON admin_actions(complaint_id);

CREATE TRIGGER IF NOT EXISTS admin_actions_no_update
    BEFORE UPDATE ON admin_actions
BEGIN
    SELECT RAISE(ABORT, 'admin_actions is append-only');
END;

CREATE TRIGGER IF NOT EXISTS admin_actions_no_delete
    BEFORE DELETE ON admin_actions
BEGIN
    SELECT RAISE(ABORT, 'admin_actions is append-only');
END;

CREATE TABLE IF NOT EXISTS upgrade_requests (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    attachments TEXT NOT NULL DEFAULT '[]',
    comment TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'accepted', 'rejected')),
    admin_explanation TEXT,
    rejection_comment TEXT,
    viewed_by_user INTEGER NOT NULL DEFAULT 0,
    decided_by TEXT,
    decided_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_upgrade_requests_user ON upgrade_requests(user_id);
CREATE UNIQUE INDEX IF NOT EXISTS idx_upgrade_requests_one_pending
    ON upgrade_requests(user_id) WHERE status = 'pending';
"""


def init_db(conn: sqlite3.Connection) -> None:
    """Create tables, indexes and triggers, and record the schema version.

    The connection must be in autocommit mode; executescript() issues its
    own COMMIT.
    """
    conn.executescript(SCHEMA)

    row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
    if row is None:
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
    elif row[0] != SCHEMA_VERSION:
        logger.info(f"Updating schema version {row[0]} -> {SCHEMA_VERSION}")
        conn.execute("UPDATE schema_version SET version = ?", (SCHEMA_VERSION,))
