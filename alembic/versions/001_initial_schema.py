"""001 – Initial schema: employees, sessions, leave lifecycle, notifications, audit.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000+00:00
"""

from alembic import op

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("user_role", ["employee", "admin"]),
    ("admin_type", ["hr_head", "managing_director", "reserved"]),
    ("leave_category", ["annual", "casual", "medical", "official"]),
    (
        "leave_status",
        ["pending_cover", "pending_admin", "approved", "declined", "cancelled"],
    ),
    ("half_day_type", ["first_half", "second_half"]),
    ("cover_request_status", ["pending", "accepted", "declined"]),
    ("reassignment_status", ["pending", "reassigned"]),
    (
        "notification_type",
        [
            "cover_request",
            "cover_accepted",
            "cover_declined",
            "leave_approved",
            "leave_declined",
            "leave_cancelled",
            "leave_expired",
            "cover_reassigned",
            "system_alert",
        ],
    ),
]

TABLES = [
    "audit_trail",
    "notifications",
    "cover_duty_reassignments",
    "leave_balances",
    "cover_requests",
    "leave_requests",
    "user_sessions",
    "employees",
]


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ── Enum types ────────────────────────────────────────────────────────
    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id                   UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_code        VARCHAR(20)  NOT NULL UNIQUE,
            first_name           VARCHAR(100) NOT NULL,
            last_name            VARCHAR(100) NOT NULL,
            display_name         VARCHAR(255),
            email                VARCHAR(255) NOT NULL UNIQUE,
            department           VARCHAR(150),
            designation          VARCHAR(150),
            role                 user_role DEFAULT 'employee',
            admin_type           admin_type,
            is_probation         BOOLEAN DEFAULT FALSE,
            date_of_confirmation DATE,
            is_active            BOOLEAN DEFAULT TRUE,
            created_at           TIMESTAMPTZ DEFAULT NOW(),
            updated_at           TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX idx_employees_role ON employees(role, admin_type) WHERE is_active = TRUE")

    # ── 2. user_sessions ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE user_sessions (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id  UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            token_hash   VARCHAR(512) NOT NULL,
            ip_address   INET,
            user_agent   TEXT,
            expires_at   TIMESTAMPTZ NOT NULL,
            is_revoked   BOOLEAN DEFAULT FALSE,
            created_at   TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX idx_user_sessions_employee ON user_sessions(employee_id)")
    op.execute("CREATE INDEX idx_user_sessions_token    ON user_sessions(token_hash)")

    # ── 3. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id                      UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id             UUID NOT NULL REFERENCES employees(id),
            category                leave_category NOT NULL,
            start_date              DATE NOT NULL,
            end_date                DATE NOT NULL,
            half_day                half_day_type,
            total_days              NUMERIC(5,1) NOT NULL,
            reason                  TEXT NOT NULL,
            supporting_document_url VARCHAR(500),
            cover_employee_id       UUID REFERENCES employees(id),
            status                  leave_status NOT NULL DEFAULT 'pending_cover',
            admin_response          TEXT,
            decided_by              UUID REFERENCES employees(id),
            decided_at              TIMESTAMPTZ,
            is_cancelled            BOOLEAN DEFAULT FALSE,
            cancellation_reason     TEXT,
            cancelled_at            TIMESTAMPTZ,
            is_paid                 BOOLEAN DEFAULT TRUE,
            created_at              TIMESTAMPTZ DEFAULT NOW(),
            updated_at              TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_date_order CHECK (start_date <= end_date)
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_requests_employee_dates "
        "ON leave_requests(employee_id, start_date, end_date)"
    )
    op.execute(
        "CREATE INDEX ix_leave_requests_cover_status "
        "ON leave_requests(cover_employee_id, status)"
    )

    # ── 4. cover_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE cover_requests (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            leave_id          UUID NOT NULL UNIQUE
                              REFERENCES leave_requests(id) ON DELETE CASCADE,
            cover_employee_id UUID NOT NULL REFERENCES employees(id),
            status            cover_request_status NOT NULL DEFAULT 'pending',
            created_at        TIMESTAMPTZ NOT NULL,
            expires_at        TIMESTAMPTZ NOT NULL,
            responded_at      TIMESTAMPTZ,
            response_message  TEXT
        )
    """)
    op.execute(
        "CREATE INDEX ix_cover_requests_status_expires ON cover_requests(status, expires_at)"
    )
    op.execute(
        "CREATE INDEX ix_cover_requests_cover_employee ON cover_requests(cover_employee_id)"
    )

    # ── 5. leave_balances ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id UUID NOT NULL REFERENCES employees(id),
            year        INTEGER NOT NULL,
            annual      NUMERIC(5,1) DEFAULT 0,
            casual      NUMERIC(5,1) DEFAULT 0,
            medical     NUMERIC(5,1) DEFAULT 0,
            official    NUMERIC(5,1) DEFAULT 0,
            created_at  TIMESTAMPTZ DEFAULT NOW(),
            updated_at  TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (employee_id, year)
        )
    """)

    # ── 6. cover_duty_reassignments ───────────────────────────────────────
    op.execute("""
        CREATE TABLE cover_duty_reassignments (
            id                         UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            original_leave_id          UUID NOT NULL
                                       REFERENCES leave_requests(id) ON DELETE CASCADE,
            cover_employee_leave_id    UUID
                                       REFERENCES leave_requests(id) ON DELETE SET NULL,
            original_cover_employee_id UUID REFERENCES employees(id),
            new_cover_employee_id      UUID REFERENCES employees(id),
            reassigned_by              UUID REFERENCES employees(id),
            status                     reassignment_status NOT NULL DEFAULT 'pending',
            created_at                 TIMESTAMPTZ DEFAULT NOW(),
            updated_at                 TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX ix_cover_reassignments_status ON cover_duty_reassignments(status)"
    )

    # ── 7. notifications ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE notifications (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            recipient_id UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            sender_id    UUID REFERENCES employees(id) ON DELETE SET NULL,
            type         notification_type DEFAULT 'system_alert',
            title        VARCHAR(200) NOT NULL,
            message      TEXT NOT NULL,
            action_url   VARCHAR(500),
            entity_type  VARCHAR(50),
            entity_id    UUID,
            is_read      BOOLEAN DEFAULT FALSE,
            read_at      TIMESTAMPTZ,
            is_pinned    BOOLEAN DEFAULT FALSE,
            created_at   TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX ix_notifications_recipient_read ON notifications(recipient_id, is_read)"
    )

    # ── 8. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id    UUID REFERENCES employees(id) ON DELETE SET NULL,
            action      VARCHAR(50) NOT NULL,
            entity_type VARCHAR(50) NOT NULL,
            entity_id   UUID NOT NULL,
            old_values  JSONB,
            new_values  JSONB,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_entity   ON audit_trail(entity_type, entity_id)")
    op.execute("CREATE INDEX ix_audit_trail_action   ON audit_trail(action)")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    for table in TABLES:
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)
