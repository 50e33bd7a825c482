"""initial maintenance ledger schema

Revision ID: a1c3e5f7b9d2
Revises:
Create Date: 2026-10-01 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a1c3e5f7b9d2"
down_revision = None
branch_labels = None
depends_on = None


def _id() -> sa.Column:
    return sa.Column("id", sa.String(length=36), primary_key=True)


def _timestamps(updated: bool = True) -> list:
    columns = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)]
    if updated:
        columns.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False))
    return columns


def _user_fk(name: str, ondelete: str = "SET NULL", nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.String(length=36), sa.ForeignKey("users.id", ondelete=ondelete), nullable=nullable)


def upgrade() -> None:
    # ------------------------------------------------------------------ users
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=9), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])

    # ------------------------------------------------------------------ fleet
    op.create_table(
        "aircraft",
        _id(),
        sa.Column("registration_number", sa.String(length=32), nullable=False),
        sa.Column("serial_number", sa.String(length=64), nullable=False),
        sa.Column("model", sa.String(length=100), nullable=False),
        sa.Column("manufacturer", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=14), nullable=False),
        sa.Column("total_flight_hours", sa.Float(), nullable=False),
        sa.Column("total_flight_cycles", sa.Integer(), nullable=False),
        sa.Column("last_flight_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("total_flight_hours >= 0", name="ck_aircraft_hours_nonneg"),
        sa.CheckConstraint("total_flight_cycles >= 0", name="ck_aircraft_cycles_nonneg"),
    )
    op.create_index("ix_aircraft_registration_number", "aircraft", ["registration_number"], unique=True)
    op.create_index("ix_aircraft_serial_number", "aircraft", ["serial_number"], unique=True)
    op.create_index("ix_aircraft_model", "aircraft", ["model"])
    op.create_index("ix_aircraft_status", "aircraft", ["status"])
    op.create_index("ix_aircraft_model_status", "aircraft", ["model", "status"])

    op.create_table(
        "components",
        _id(),
        sa.Column("serial_number", sa.String(length=64), nullable=False),
        sa.Column("part_number", sa.String(length=64), nullable=False),
        sa.Column("component_type", sa.String(length=17), nullable=False),
        sa.Column("manufacturer", sa.String(length=100), nullable=True),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("total_flight_hours", sa.Float(), nullable=False),
        sa.Column("total_flight_cycles", sa.Integer(), nullable=False),
        sa.Column("battery_cycles", sa.Integer(), nullable=False),
        sa.Column("is_life_limited", sa.Boolean(), nullable=False),
        sa.Column("max_flight_hours", sa.Float(), nullable=True),
        sa.Column("max_cycles", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=8), nullable=False),
        sa.Column("is_airworthy", sa.Boolean(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("total_flight_hours >= 0", name="ck_components_hours_nonneg"),
        sa.CheckConstraint("total_flight_cycles >= 0", name="ck_components_cycles_nonneg"),
        sa.CheckConstraint("battery_cycles >= 0", name="ck_components_battery_cycles_nonneg"),
        sa.CheckConstraint("max_flight_hours IS NULL OR max_flight_hours > 0", name="ck_components_max_hours_pos"),
        sa.CheckConstraint("max_cycles IS NULL OR max_cycles > 0", name="ck_components_max_cycles_pos"),
    )
    op.create_index("ix_components_serial_number", "components", ["serial_number"], unique=True)
    op.create_index("ix_components_part_number", "components", ["part_number"])
    op.create_index("ix_components_component_type", "components", ["component_type"])
    op.create_index("ix_components_status", "components", ["status"])
    op.create_index("ix_components_type_status", "components", ["component_type", "status"])

    op.create_table(
        "component_installations",
        _id(),
        sa.Column(
            "component_id",
            sa.String(length=36),
            sa.ForeignKey("components.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("aircraft_id", sa.String(length=36), sa.ForeignKey("aircraft.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("location", sa.String(length=64), nullable=False),
        sa.Column("inherited_flight_hours", sa.Float(), nullable=False),
        sa.Column("inherited_flight_cycles", sa.Integer(), nullable=False),
        sa.Column("inherited_battery_cycles", sa.Integer(), nullable=False),
        sa.Column("accumulated_flight_hours", sa.Float(), nullable=False),
        sa.Column("accumulated_flight_cycles", sa.Integer(), nullable=False),
        sa.Column("accumulated_battery_cycles", sa.Integer(), nullable=False),
        sa.Column("installed_at", sa.DateTime(timezone=True), nullable=False),
        _user_fk("installed_by_user_id"),
        sa.Column("install_notes", sa.Text(), nullable=True),
        sa.Column("removed_at", sa.DateTime(timezone=True), nullable=True),
        _user_fk("removed_by_user_id"),
        sa.Column("remove_notes", sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.CheckConstraint("inherited_flight_hours >= 0", name="ck_ci_inherited_hours_nonneg"),
        sa.CheckConstraint("inherited_flight_cycles >= 0", name="ck_ci_inherited_cycles_nonneg"),
        sa.CheckConstraint("inherited_battery_cycles >= 0", name="ck_ci_inherited_battery_nonneg"),
        sa.CheckConstraint("accumulated_flight_hours >= 0", name="ck_ci_accumulated_hours_nonneg"),
        sa.CheckConstraint("accumulated_flight_cycles >= 0", name="ck_ci_accumulated_cycles_nonneg"),
        sa.CheckConstraint("accumulated_battery_cycles >= 0", name="ck_ci_accumulated_battery_nonneg"),
        sa.CheckConstraint("removed_at IS NULL OR removed_at >= installed_at", name="ck_ci_removed_after_installed"),
    )
    op.create_index("ix_component_installations_component_id", "component_installations", ["component_id"])
    op.create_index("ix_component_installations_aircraft_id", "component_installations", ["aircraft_id"])
    op.create_index("ix_component_installations_removed_at", "component_installations", ["removed_at"])
    op.create_index(
        "ix_component_installations_component_time", "component_installations", ["component_id", "installed_at"]
    )
    op.create_index("ix_component_installations_aircraft_open", "component_installations", ["aircraft_id", "removed_at"])
    op.create_index(
        "uq_component_installations_open_component",
        "component_installations",
        ["component_id"],
        unique=True,
        sqlite_where=sa.text("removed_at IS NULL"),
        postgresql_where=sa.text("removed_at IS NULL"),
    )
    op.create_index(
        "uq_component_installations_open_location",
        "component_installations",
        ["aircraft_id", "location"],
        unique=True,
        sqlite_where=sa.text("removed_at IS NULL"),
        postgresql_where=sa.text("removed_at IS NULL"),
    )

    op.create_table(
        "aircraft_usage_entries",
        _id(),
        sa.Column("aircraft_id", sa.String(length=36), sa.ForeignKey("aircraft.id", ondelete="CASCADE"), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("flight_hours", sa.Float(), nullable=False),
        sa.Column("flight_cycles", sa.Integer(), nullable=False),
        sa.Column("battery_cycles_by_location", sa.JSON(), nullable=True),
        sa.Column("total_flight_hours_after", sa.Float(), nullable=False),
        sa.Column("total_flight_cycles_after", sa.Integer(), nullable=False),
        _user_fk("recorded_by_user_id"),
        sa.Column("source_reference", sa.String(length=128), nullable=True),
        *_timestamps(updated=False),
        sa.CheckConstraint("flight_hours >= 0", name="ck_usage_entries_hours_nonneg"),
        sa.CheckConstraint("flight_cycles >= 0", name="ck_usage_entries_cycles_nonneg"),
    )
    op.create_index("ix_aircraft_usage_entries_aircraft_id", "aircraft_usage_entries", ["aircraft_id"])
    op.create_index("ix_usage_entries_aircraft_time", "aircraft_usage_entries", ["aircraft_id", "occurred_at"])

    # ------------------------------------------------------------------ audit
    op.create_table(
        "audit_events",
        _id(),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        _user_fk("actor_user_id"),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("correlation_id", sa.String(length=64), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("ix_audit_events_entity_type", "audit_events", ["entity_type"])
    op.create_index("ix_audit_events_entity_id", "audit_events", ["entity_id"])
    op.create_index("ix_audit_events_action", "audit_events", ["action"])
    op.create_index("ix_audit_events_actor_user_id", "audit_events", ["actor_user_id"])
    op.create_index("ix_audit_events_occurred_at", "audit_events", ["occurred_at"])
    op.create_index("ix_audit_events_correlation_id", "audit_events", ["correlation_id"])
    op.create_index("ix_audit_events_entity", "audit_events", ["entity_type", "entity_id"])
    op.create_index("ix_audit_events_action_time", "audit_events", ["action", "occurred_at"])
    op.create_index("ix_audit_events_time_desc", "audit_events", [sa.text("occurred_at DESC")])

    # ------------------------------------------------------ maintenance program
    op.create_table(
        "maintenance_programs",
        _id(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("aircraft_model", sa.String(length=100), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        _user_fk("created_by_user_id"),
        sa.UniqueConstraint("aircraft_model", "name", name="uq_maintenance_programs_model_name"),
    )
    op.create_index("ix_maintenance_programs_aircraft_model", "maintenance_programs", ["aircraft_model"])
    op.create_index("ix_maintenance_programs_model_default", "maintenance_programs", ["aircraft_model", "is_default"])

    op.create_table(
        "maintenance_triggers",
        _id(),
        sa.Column(
            "program_id",
            sa.String(length=36),
            sa.ForeignKey("maintenance_programs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("trigger_type", sa.String(length=14), nullable=False),
        sa.Column("interval_value", sa.Float(), nullable=False),
        sa.Column("anchor_date", sa.Date(), nullable=True),
        sa.Column("applicable_component_type", sa.String(length=17), nullable=True),
        sa.Column("applicable_location", sa.String(length=64), nullable=True),
        sa.Column("priority", sa.String(length=8), nullable=False),
        sa.Column("required_role", sa.String(length=9), nullable=False),
        sa.Column("is_rii", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("interval_value > 0", name="ck_maintenance_triggers_interval_pos"),
    )
    op.create_index("ix_maintenance_triggers_program_id", "maintenance_triggers", ["program_id"])
    op.create_index("ix_maintenance_triggers_program_active", "maintenance_triggers", ["program_id", "is_active"])

    op.create_table(
        "maintenance_schedules",
        _id(),
        sa.Column("aircraft_id", sa.String(length=36), sa.ForeignKey("aircraft.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "trigger_id",
            sa.String(length=36),
            sa.ForeignKey("maintenance_triggers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "program_id",
            sa.String(length=36),
            sa.ForeignKey("maintenance_programs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", sa.String(length=11), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("due_at_value", sa.Float(), nullable=True),
        sa.Column("last_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_completed_at_value", sa.Float(), nullable=True),
        sa.Column(
            "tracked_component_id",
            sa.String(length=36),
            sa.ForeignKey("components.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("attached_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_evaluated_at", sa.DateTime(timezone=True), nullable=True),
        _user_fk("assigned_to_user_id"),
        # FK to work_orders added below, once that table exists.
        sa.Column("work_order_id", sa.String(length=36), nullable=True),
        sa.Column("skip_reason", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("deactivated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("aircraft_id", "trigger_id", name="uq_maintenance_schedules_aircraft_trigger"),
        sa.CheckConstraint(
            "last_completed_at_value IS NULL OR last_completed_at_value >= 0",
            name="ck_maintenance_schedules_last_value_nonneg",
        ),
    )
    op.create_index("ix_maintenance_schedules_aircraft_id", "maintenance_schedules", ["aircraft_id"])
    op.create_index("ix_maintenance_schedules_trigger_id", "maintenance_schedules", ["trigger_id"])
    op.create_index("ix_maintenance_schedules_program_id", "maintenance_schedules", ["program_id"])
    op.create_index("ix_maintenance_schedules_status", "maintenance_schedules", ["status"])
    op.create_index("ix_maintenance_schedules_tracked_component_id", "maintenance_schedules", ["tracked_component_id"])
    op.create_index("ix_maintenance_schedules_work_order_id", "maintenance_schedules", ["work_order_id"])
    op.create_index("ix_maintenance_schedules_is_active", "maintenance_schedules", ["is_active"])
    op.create_index("ix_maintenance_schedules_aircraft_status", "maintenance_schedules", ["aircraft_id", "status"])
    op.create_index("ix_maintenance_schedules_due_date", "maintenance_schedules", ["aircraft_id", "due_date"])

    # ------------------------------------------------------------- flight / work
    op.create_table(
        "pilot_reports",
        _id(),
        sa.Column("aircraft_id", sa.String(length=36), sa.ForeignKey("aircraft.id", ondelete="CASCADE"), nullable=False),
        _user_fk("reported_by_user_id"),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("severity", sa.String(length=8), nullable=False),
        sa.Column("status", sa.String(length=18), nullable=False),
        sa.Column("is_aog", sa.Boolean(), nullable=False),
        sa.Column("reported_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        _user_fk("resolved_by_user_id"),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_pilot_reports_aircraft_id", "pilot_reports", ["aircraft_id"])
    op.create_index("ix_pilot_reports_status", "pilot_reports", ["status"])
    op.create_index("ix_pilot_reports_aircraft_status", "pilot_reports", ["aircraft_id", "status"])
    op.create_index("ix_pilot_reports_severity", "pilot_reports", ["severity"])

    op.create_table(
        "work_orders",
        _id(),
        sa.Column("order_number", sa.String(length=32), nullable=False),
        sa.Column("aircraft_id", sa.String(length=36), sa.ForeignKey("aircraft.id", ondelete="RESTRICT"), nullable=False),
        sa.Column(
            "schedule_id",
            sa.String(length=36),
            sa.ForeignKey("maintenance_schedules.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "pilot_report_id",
            sa.String(length=36),
            sa.ForeignKey("pilot_reports.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("work_order_type", sa.String(length=11), nullable=False),
        sa.Column("status", sa.String(length=11), nullable=False),
        sa.Column("priority", sa.String(length=8), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _user_fk("created_by_user_id"),
        _user_fk("performed_by_user_id"),
        _user_fk("inspected_by_user_id"),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_work_orders_order_number", "work_orders", ["order_number"], unique=True)
    op.create_index("ix_work_orders_aircraft_id", "work_orders", ["aircraft_id"])
    op.create_index("ix_work_orders_schedule_id", "work_orders", ["schedule_id"])
    op.create_index("ix_work_orders_pilot_report_id", "work_orders", ["pilot_report_id"])
    op.create_index("ix_work_orders_status", "work_orders", ["status"])
    op.create_index("ix_work_orders_aircraft_status", "work_orders", ["aircraft_id", "status"])
    op.create_index("ix_work_orders_schedule_status", "work_orders", ["schedule_id", "status"])

    with op.batch_alter_table("maintenance_schedules") as batch_op:
        batch_op.create_foreign_key(
            "fk_maintenance_schedules_work_order_id",
            "work_orders",
            ["work_order_id"],
            ["id"],
            ondelete="SET NULL",
        )

    op.create_table(
        "maintenance_records",
        _id(),
        sa.Column(
            "schedule_id",
            sa.String(length=36),
            sa.ForeignKey("maintenance_schedules.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "trigger_id",
            sa.String(length=36),
            sa.ForeignKey("maintenance_triggers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("aircraft_id", sa.String(length=36), sa.ForeignKey("aircraft.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("component_id", sa.String(length=36), sa.ForeignKey("components.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("work_order_id", sa.String(length=36), sa.ForeignKey("work_orders.id", ondelete="SET NULL"), nullable=True),
        sa.Column("performed_at", sa.DateTime(timezone=True), nullable=False),
        _user_fk("performed_by_user_id", ondelete="RESTRICT", nullable=False),
        _user_fk("inspected_by_user_id", ondelete="RESTRICT"),
        sa.Column("value_at_completion", sa.Float(), nullable=True),
        sa.Column("aircraft_flight_hours", sa.Float(), nullable=False),
        sa.Column("aircraft_flight_cycles", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("ix_maintenance_records_schedule_id", "maintenance_records", ["schedule_id"])
    op.create_index("ix_maintenance_records_trigger_id", "maintenance_records", ["trigger_id"])
    op.create_index(
        "ix_maintenance_records_trigger_component",
        "maintenance_records",
        ["trigger_id", "component_id", "performed_at"],
    )
    op.create_index("ix_maintenance_records_aircraft_time", "maintenance_records", ["aircraft_id", "performed_at"])

    # -------------------------------------------------------------------- crs
    op.create_table(
        "release_records",
        _id(),
        sa.Column("release_serial", sa.String(length=32), nullable=False),
        sa.Column("aircraft_id", sa.String(length=36), sa.ForeignKey("aircraft.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("work_order_id", sa.String(length=36), sa.ForeignKey("work_orders.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("scope", sa.String(length=10), nullable=False),
        sa.Column("status", sa.String(length=11), nullable=False),
        sa.Column("maintenance_carried_out", sa.Text(), nullable=False),
        sa.Column("conditions", sa.Text(), nullable=True),
        sa.Column("aircraft_flight_hours", sa.Float(), nullable=False),
        sa.Column("aircraft_flight_cycles", sa.Integer(), nullable=False),
        _user_fk("released_by_user_id", ondelete="RESTRICT", nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("signature_hash", sa.String(length=64), nullable=False),
        sa.Column("is_valid", sa.Boolean(), nullable=False),
        sa.Column(
            "superseded_by_id",
            sa.String(length=36),
            sa.ForeignKey("release_records.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("superseded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("ix_release_records_release_serial", "release_records", ["release_serial"], unique=True)
    op.create_index("ix_release_records_aircraft_id", "release_records", ["aircraft_id"])
    op.create_index("ix_release_records_work_order_id", "release_records", ["work_order_id"])
    op.create_index("ix_release_records_issued_at", "release_records", ["issued_at"])
    op.create_index("ix_release_records_is_valid", "release_records", ["is_valid"])
    op.create_index("ix_release_records_aircraft_issued", "release_records", ["aircraft_id", "issued_at"])
    op.create_index(
        "uq_release_records_valid_per_aircraft",
        "release_records",
        ["aircraft_id"],
        unique=True,
        sqlite_where=sa.text("is_valid = 1"),
        postgresql_where=sa.text("is_valid"),
    )


def downgrade() -> None:
    op.drop_table("release_records")
    op.drop_table("maintenance_records")
    with op.batch_alter_table("maintenance_schedules") as batch_op:
        batch_op.drop_constraint("fk_maintenance_schedules_work_order_id", type_="foreignkey")
    op.drop_table("work_orders")
    op.drop_table("pilot_reports")
    op.drop_table("maintenance_schedules")
    op.drop_table("maintenance_triggers")
    op.drop_table("maintenance_programs")
    op.drop_table("audit_events")
    op.drop_table("aircraft_usage_entries")
    op.drop_table("component_installations")
    op.drop_table("components")
    op.drop_table("aircraft")
    op.drop_table("users")
