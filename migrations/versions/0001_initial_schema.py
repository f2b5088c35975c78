"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19

Creates every table. On Postgres, tenant tables also get row-level
security keyed on the transaction-local `app.tenant_id` setting.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


TENANT_TABLES = (
    "people",
    "groups",
    "group_members",
    "prayer_requests",
    "prayer_records",
    "donation_campaigns",
    "donations",
    "events",
    "attendance_sessions",
    "attendance_records",
    "songs",
    "sermon_series",
    "sermon_plan_templates",
    "sermons",
    "sermon_plans",
    "announcements",
    "brand_packs",
    "bulletin_issues",
    "service_items",
    "ai_settings",
    "ai_usage_events",
    "preach_sessions",
    "service_item_timings",
)

_TENANT_MATCH = "tenant_id = current_setting('app.tenant_id', true)"


def _id() -> sa.Column:
    return sa.Column("id", sa.Integer(), primary_key=True, nullable=False)


def _tenant() -> sa.Column:
    return sa.Column("tenant_id", sa.String(36), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)


def _ts(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=False), nullable=True)
    return sa.Column(name, sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp())


def _timestamps(*, deleted: bool = True) -> list[sa.Column]:
    cols = [_ts("created_at"), _ts("updated_at")]
    if deleted:
        cols.append(_ts("deleted_at", nullable=True))
    return cols


def _fk(name: str, target: str, ondelete: str = "SET NULL", nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.Integer(), sa.ForeignKey(target, ondelete=ondelete), nullable=nullable)


def _bool(name: str, default: bool) -> sa.Column:
    return sa.Column(name, sa.Boolean(), nullable=False, server_default=sa.true() if default else sa.false())


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.String(36), primary_key=True, nullable=False),
        sa.Column("slug", sa.String(50), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="active"),
        sa.Column("primary_email", sa.String(320), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="America/New_York"),
        sa.Column("locale", sa.String(16), nullable=False, server_default="en-US"),
        sa.Column("plan", sa.String(32), nullable=False, server_default="core"),
        _bool("ai_enabled", False),
        sa.Column("ai_monthly_token_limit", sa.Integer(), nullable=True, server_default="0"),
        *_timestamps(),
    )

    op.create_table(
        "users",
        _id(),
        sa.Column("tenant_id", sa.String(36), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=True),
        _bool("is_active", True),
        _ts("created_at"),
    )
    op.create_table(
        "roles",
        _id(),
        sa.Column("key", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(128), nullable=False),
        _ts("created_at"),
    )
    op.create_table(
        "permissions",
        _id(),
        sa.Column("key", sa.String(128), nullable=False, unique=True),
        sa.Column("name", sa.String(128), nullable=False),
        _ts("created_at"),
    )
    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    )
    op.create_table(
        "role_permissions",
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
        sa.Column(
            "permission_id", sa.Integer(), sa.ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True
        ),
    )
    op.create_table(
        "audit_events",
        _id(),
        _ts("created_at"),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("tenant_id", sa.String(36), nullable=True),
        _fk("actor_user_id", "users.id"),
        sa.Column("actor_user_email", sa.String(320), nullable=True),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("client_ip", sa.String(64), nullable=True),
        sa.UniqueConstraint("request_id", "id", name="uq_audit_request_id_id"),
    )
    op.create_index("idx_audit_events_tenant", "audit_events", ["tenant_id"])

    op.create_table(
        "people",
        _id(),
        _tenant(),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("gender", sa.String(32), nullable=True),
        sa.Column("household_id", sa.String(64), nullable=True),
        sa.Column("member_since", sa.Date(), nullable=True),
        sa.Column("membership_status", sa.String(32), nullable=False, server_default="member"),
        sa.Column("envelope_number", sa.String(32), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_people_tenant", "people", ["tenant_id"])
    op.create_index("idx_people_name", "people", ["tenant_id", "last_name", "first_name"])

    op.create_table(
        "groups",
        _id(),
        _tenant(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        _fk("leader_id", "people.id"),
        *_timestamps(),
    )
    op.create_index("idx_groups_tenant", "groups", ["tenant_id"])
    op.create_table(
        "group_members",
        _id(),
        _tenant(),
        _fk("group_id", "groups.id", "CASCADE", nullable=False),
        _fk("person_id", "people.id", "CASCADE", nullable=False),
        sa.Column("role", sa.String(32), nullable=False, server_default="member"),
        _ts("joined_at"),
        _ts("deleted_at", nullable=True),
    )
    op.create_index("idx_group_members_group", "group_members", ["group_id"])
    op.create_index("idx_group_members_person", "group_members", ["person_id"])

    op.create_table(
        "prayer_requests",
        _id(),
        _tenant(),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        _fk("person_id", "people.id"),
        sa.Column("requester_name", sa.String(255), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="active"),
        sa.Column("visibility", sa.String(32), nullable=False, server_default="public"),
        _bool("is_urgent", False),
        _ts("answered_at", nullable=True),
        sa.Column("answer_note", sa.Text(), nullable=True),
        _fk("created_by_user_id", "users.id"),
        *_timestamps(),
    )
    op.create_index("idx_prayer_requests_tenant", "prayer_requests", ["tenant_id"])
    op.create_index("idx_prayer_requests_status", "prayer_requests", ["tenant_id", "status"])
    op.create_table(
        "prayer_records",
        _id(),
        _tenant(),
        _fk("prayer_request_id", "prayer_requests.id", "CASCADE", nullable=False),
        _fk("person_id", "people.id", "CASCADE", nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        _ts("prayed_at"),
        sa.UniqueConstraint("prayer_request_id", "person_id", name="uq_prayer_records_request_person"),
    )
    op.create_index("idx_prayer_records_request", "prayer_records", ["prayer_request_id"])

    op.create_table(
        "donation_campaigns",
        _id(),
        _tenant(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("goal_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        _bool("is_active", True),
        *_timestamps(),
    )
    op.create_index("idx_donation_campaigns_tenant", "donation_campaigns", ["tenant_id"])
    op.create_table(
        "donations",
        _id(),
        _tenant(),
        _fk("person_id", "people.id"),
        _fk("campaign_id", "donation_campaigns.id"),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("method", sa.String(32), nullable=False),
        sa.Column("frequency", sa.String(32), nullable=False, server_default="one_time"),
        sa.Column("status", sa.String(32), nullable=False, server_default="completed"),
        sa.Column("donation_date", sa.Date(), nullable=False),
        sa.Column("fund_name", sa.String(255), nullable=True),
        sa.Column("transaction_id", sa.String(255), nullable=True),
        sa.Column("check_number", sa.String(64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _bool("is_tax_deductible", True),
        _ts("receipt_sent_at", nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_donations_tenant_date", "donations", ["tenant_id", "donation_date"])
    op.create_index("idx_donations_person", "donations", ["person_id"])
    op.create_index("idx_donations_campaign", "donations", ["campaign_id"])

    op.create_table(
        "events",
        _id(),
        _tenant(),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=False), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        _bool("is_public", True),
        sa.Column("external_uid", sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_events_tenant_start", "events", ["tenant_id", "start_at"])

    op.create_table(
        "attendance_sessions",
        _id(),
        _tenant(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(32), nullable=False, server_default="SundayService"),
        _fk("event_id", "events.id"),
        _fk("group_id", "groups.id"),
        sa.Column("session_date", sa.Date(), nullable=False),
        sa.Column("session_time", sa.Time(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_attendance_sessions_tenant_date", "attendance_sessions", ["tenant_id", "session_date"])
    op.create_table(
        "attendance_records",
        _id(),
        _tenant(),
        _fk("session_id", "attendance_sessions.id", "CASCADE", nullable=False),
        _fk("person_id", "people.id", "CASCADE", nullable=False),
        sa.Column("guest_count", sa.Integer(), nullable=False, server_default="0"),
        _bool("is_visitor", False),
        sa.Column("notes", sa.Text(), nullable=True),
        _fk("checked_in_by_user_id", "users.id"),
        _ts("checked_in_at"),
        sa.UniqueConstraint("session_id", "person_id", name="uq_attendance_records_session_person"),
    )
    op.create_index("idx_attendance_records_session", "attendance_records", ["session_id"])

    op.create_table(
        "songs",
        _id(),
        _tenant(),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("alternate_title", sa.String(255), nullable=True),
        sa.Column("first_line", sa.String(500), nullable=True),
        sa.Column("tune_name", sa.String(100), nullable=True),
        sa.Column("hymn_number", sa.String(20), nullable=True),
        sa.Column("hymnal_code", sa.String(20), nullable=True),
        sa.Column("author", sa.String(255), nullable=True),
        sa.Column("composer", sa.String(255), nullable=True),
        _bool("is_public_domain", False),
        sa.Column("ccli_number", sa.String(50), nullable=True),
        sa.Column("copyright", sa.Text(), nullable=True),
        sa.Column("default_key", sa.String(10), nullable=True),
        sa.Column("default_tempo", sa.Integer(), nullable=True),
        sa.Column("lyrics", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_songs_tenant_title", "songs", ["tenant_id", "title"])
    op.create_index("idx_songs_tenant_ccli", "songs", ["tenant_id", "ccli_number"])

    op.create_table(
        "sermon_series",
        _id(),
        _tenant(),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("slug", sa.String(100), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        _bool("is_active", True),
        *_timestamps(),
    )
    op.create_table(
        "sermon_plan_templates",
        _id(),
        _tenant(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("default_title", sa.String(200), nullable=True),
        sa.Column("default_big_idea", sa.String(500), nullable=True),
        sa.Column("default_primary_text", sa.String(100), nullable=True),
        sa.Column("default_supporting_texts", sa.JSON(), nullable=False),
        sa.Column("structure", sa.JSON(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("style_profile", sa.String(40), nullable=True),
        *_timestamps(deleted=False),
    )
    op.create_table(
        "sermons",
        _id(),
        _tenant(),
        _fk("series_id", "sermon_series.id"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("sermon_date", sa.Date(), nullable=False),
        sa.Column("preacher", sa.String(150), nullable=True),
        sa.Column("primary_scripture", sa.String(100), nullable=True),
        sa.Column("additional_scripture", sa.Text(), nullable=True),
        sa.Column("manuscript", sa.Text(), nullable=True),
        sa.Column("audio_url", sa.Text(), nullable=True),
        sa.Column("video_url", sa.Text(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.Column("outline", sa.JSON(), nullable=True),
        sa.Column("path_stage", sa.String(32), nullable=False, server_default="text_setup"),
        sa.Column("status", sa.String(16), nullable=False, server_default="idea"),
        sa.Column("style_profile", sa.String(40), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_sermons_tenant_date", "sermons", ["tenant_id", "sermon_date"])
    op.create_table(
        "sermon_plans",
        _id(),
        _tenant(),
        _fk("sermon_id", "sermons.id", "CASCADE", nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("big_idea", sa.String(500), nullable=True),
        sa.Column("primary_text", sa.String(100), nullable=True),
        sa.Column("supporting_texts", sa.JSON(), nullable=False),
        sa.Column("elements", sa.JSON(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        _fk("template_id", "sermon_plan_templates.id"),
        sa.Column("style_profile", sa.String(40), nullable=True),
        *_timestamps(deleted=False),
        sa.UniqueConstraint("sermon_id", name="uq_sermon_plans_sermon"),
    )

    op.create_table(
        "announcements",
        _id(),
        _tenant(),
        sa.Column("title", sa.String(60), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("priority", sa.String(16), nullable=False, server_default="Normal"),
        sa.Column("category", sa.String(50), nullable=True),
        _bool("is_active", True),
        _ts("starts_at"),
        _ts("expires_at", nullable=True),
        _fk("submitted_by_user_id", "users.id"),
        _fk("approved_by_user_id", "users.id"),
        _ts("approved_at", nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_announcements_tenant_active", "announcements", ["tenant_id", "is_active"])

    op.create_table(
        "brand_packs",
        _id(),
        _tenant(),
        sa.Column("name", sa.String(100), nullable=False, server_default="Default"),
        _bool("is_active", True),
        sa.Column("legal_name", sa.String(255), nullable=True),
        sa.Column("church_name", sa.String(255), nullable=True),
        sa.Column("address_line1", sa.String(255), nullable=True),
        sa.Column("address_line2", sa.String(255), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("state", sa.String(50), nullable=True),
        sa.Column("postal_code", sa.String(20), nullable=True),
        sa.Column("country", sa.String(50), nullable=True, server_default="US"),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("website", sa.String(255), nullable=True),
        sa.Column("ein", sa.String(20), nullable=True),
        sa.Column("logo_url", sa.Text(), nullable=True),
        sa.Column("tax_statement_footer", sa.Text(), nullable=True),
        sa.Column("giving_url", sa.Text(), nullable=True),
        sa.Column("tagline", sa.String(255), nullable=True),
        sa.Column("service_time", sa.String(100), nullable=True),
        sa.Column("bulletin_default_layout_mode", sa.String(16), nullable=False, server_default="template"),
        _bool("bulletin_ai_enabled", False),
        sa.Column("bulletin_default_canvas_grid_size", sa.Integer(), nullable=False, server_default="16"),
        _bool("bulletin_default_canvas_show_grid", True),
        sa.Column("bulletin_default_pages", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("theology_profile", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_brand_packs_tenant_active", "brand_packs", ["tenant_id", "is_active"])

    op.create_table(
        "bulletin_issues",
        _id(),
        _tenant(),
        sa.Column("service_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="draft"),
        _fk("brand_pack_id", "brand_packs.id"),
        sa.Column("template_key", sa.String(64), nullable=True),
        sa.Column("design_options", sa.JSON(), nullable=True),
        sa.Column("canvas_layout", sa.JSON(), nullable=True),
        _bool("use_canvas_layout", False),
        sa.Column("generator_payload", sa.JSON(), nullable=True),
        sa.Column("public_token", sa.String(36), nullable=False, unique=True),
        _bool("is_public", False),
        _bool("is_published", False),
        _ts("published_at", nullable=True),
        sa.Column("pdf_storage_key", sa.String(512), nullable=True),
        _ts("locked_at", nullable=True),
        _fk("locked_by_user_id", "users.id"),
        *_timestamps(),
    )
    op.create_index("idx_bulletin_issues_tenant_date", "bulletin_issues", ["tenant_id", "service_date"])
    op.create_table(
        "service_items",
        _id(),
        _tenant(),
        _fk("bulletin_issue_id", "bulletin_issues.id", "CASCADE", nullable=False),
        sa.Column("item_type", sa.String(32), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("leader_name", sa.String(150), nullable=True),
        sa.Column("scripture_reference", sa.String(255), nullable=True),
        sa.Column("ccli_number", sa.String(32), nullable=True),
        sa.Column("artist", sa.String(255), nullable=True),
        _fk("song_id", "songs.id"),
        _fk("sermon_id", "sermons.id"),
        sa.Column("sequence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("printed_text", sa.Text(), nullable=True),
        sa.Column("marker", sa.String(8), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_service_items_bulletin_seq", "service_items", ["bulletin_issue_id", "sequence"])

    op.create_table(
        "ai_settings",
        _id(),
        sa.Column(
            "tenant_id", sa.String(36), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, unique=True
        ),
        sa.Column("provider", sa.String(32), nullable=False, server_default="openai"),
        _bool("enabled", False),
        sa.Column("api_key_encrypted", sa.Text(), nullable=True),
        sa.Column("key_last4", sa.String(4), nullable=True),
        *_timestamps(deleted=False),
    )
    op.create_table(
        "ai_usage_events",
        _id(),
        _tenant(),
        sa.Column("feature", sa.String(64), nullable=False),
        sa.Column("model", sa.String(64), nullable=False),
        sa.Column("tokens_in", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tokens_out", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("meta", sa.JSON(), nullable=True),
        _ts("created_at"),
    )
    op.create_index("idx_ai_usage_events_tenant_created", "ai_usage_events", ["tenant_id", "created_at"])

    op.create_table(
        "preach_sessions",
        _id(),
        _tenant(),
        _fk("bulletin_issue_id", "bulletin_issues.id", "CASCADE", nullable=False),
        _ts("started_at"),
        _ts("ended_at", nullable=True),
        _fk("created_by_user_id", "users.id"),
        *_timestamps(deleted=False),
    )
    op.create_index("idx_preach_sessions_tenant_bulletin", "preach_sessions", ["tenant_id", "bulletin_issue_id"])
    op.create_table(
        "service_item_timings",
        _id(),
        _tenant(),
        _fk("preach_session_id", "preach_sessions.id", "CASCADE", nullable=False),
        _fk("service_item_id", "service_items.id", "CASCADE", nullable=False),
        _ts("started_at", nullable=True),
        _ts("ended_at", nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        *_timestamps(deleted=False),
        sa.UniqueConstraint("preach_session_id", "service_item_id", name="uq_service_item_timings_session_item"),
    )
    op.create_index("idx_service_item_timings_session", "service_item_timings", ["preach_session_id"])

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for table in TENANT_TABLES:
            op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
            op.execute(f"CREATE POLICY tenant_isolation ON {table} USING ({_TENANT_MATCH}) WITH CHECK ({_TENANT_MATCH})")
        # Public share links resolve before any tenant is known.
        op.execute(
            "CREATE POLICY public_bulletin_read ON bulletin_issues FOR SELECT "
            "USING (is_public AND is_published AND deleted_at IS NULL)"
        )


def downgrade() -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute("DROP POLICY IF EXISTS public_bulletin_read ON bulletin_issues")
        for table in TENANT_TABLES:
            op.execute(f"DROP POLICY IF EXISTS tenant_isolation ON {table}")
    for table in reversed(TENANT_TABLES):
        op.drop_table(table)
    for table in ("audit_events", "role_permissions", "user_roles", "permissions", "roles", "users", "tenants"):
        op.drop_table(table)
