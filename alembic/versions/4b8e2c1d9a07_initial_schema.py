"""Initial schema for the vehicle service booking backend.

Revision ID: 4b8e2c1d9a07
Revises:
Create Date: 2025-10-01 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "4b8e2c1d9a07"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum("customer", "employee", "admin", name="userrole")
appointment_status = sa.Enum(
    "pending", "confirmed", "in-service", "completed", "cancelled", name="appointmentstatus"
)
payment_status = sa.Enum("pending", "deposit-paid", "paid", "refunded", name="paymentstatus")
service_record_status = sa.Enum(
    "received", "in-progress", "quality-check", "completed", "cancelled", name="servicerecordstatus"
)
notification_type = sa.Enum(
    "appointment_created",
    "appointment_confirmed",
    "appointment_assigned",
    "appointment_rescheduled",
    "appointment_cancelled",
    "appointment_completed",
    "appointment_reminder",
    "service_started",
    "service_completed",
    "vehicle_ready",
    "system_notification",
    name="notificationtype",
)
notification_priority = sa.Enum("low", "medium", "high", "urgent", name="notificationpriority")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        # notifications.recipient_role reuses the userrole type.
        recipient_role = postgresql.ENUM("customer", "employee", "admin", name="userrole", create_type=False)
    else:
        recipient_role = user_role

    op.create_table(
        "users",
        sa.Column("user_id", sa.String(length=26), primary_key=True),
        sa.Column("role", user_role, nullable=False, server_default="customer"),
        sa.Column("display_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255)),
        sa.Column("phone_number", sa.String(length=32)),
        sa.Column("employee_id", sa.String(length=32)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notify_in_app", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notify_email", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notify_sms", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_users_employee_id", "users", ["employee_id"], unique=True)

    op.create_table(
        "vehicles",
        sa.Column("vehicle_id", sa.String(length=26), primary_key=True),
        sa.Column(
            "owner_id",
            sa.String(length=26),
            sa.ForeignKey("users.user_id", ondelete="CASCADE", name="fk_vehicles_owner_id_users"),
            nullable=False,
        ),
        sa.Column("make", sa.String(length=60), nullable=False),
        sa.Column("model", sa.String(length=60), nullable=False),
        sa.Column("year", sa.Integer()),
        sa.Column("plate_number", sa.String(length=20), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("plate_number", name="uq_vehicles_plate_number"),
    )
    op.create_index("ix_vehicles_owner_id", "vehicles", ["owner_id"])

    op.create_table(
        "appointments",
        sa.Column("appointment_id", sa.String(length=26), primary_key=True),
        sa.Column(
            "customer_id",
            sa.String(length=26),
            sa.ForeignKey("users.user_id", ondelete="RESTRICT", name="fk_appointments_customer_id_users"),
            nullable=False,
        ),
        sa.Column(
            "vehicle_id",
            sa.String(length=26),
            sa.ForeignKey("vehicles.vehicle_id", ondelete="RESTRICT", name="fk_appointments_vehicle_id_vehicles"),
            nullable=False,
        ),
        sa.Column("service_ids", sa.JSON(), nullable=False),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("appointment_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("status", appointment_status, nullable=False, server_default="pending"),
        sa.Column("status_history", sa.JSON(), nullable=False),
        sa.Column(
            "technician_id",
            sa.String(length=26),
            sa.ForeignKey("users.user_id", ondelete="SET NULL", name="fk_appointments_technician_id_users"),
        ),
        sa.Column("technician_name", sa.String(length=100)),
        sa.Column("assigned_at", sa.DateTime(timezone=True)),
        sa.Column("group_id", sa.String(length=26)),
        sa.Column("sequence", sa.Integer()),
        sa.Column("modification_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("modification_history", sa.JSON(), nullable=False),
        sa.Column("booking_fee", sa.Numeric(10, 2), nullable=False, server_default="5.00"),
        sa.Column("payment_status", payment_status, nullable=False, server_default="pending"),
        sa.Column("cancellation_fee", sa.Numeric(10, 2)),
        sa.Column("cancellation_reason", sa.Text()),
        sa.Column("customer_notes", sa.Text()),
        sa.Column("confirmed_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        *_timestamps(),
        sa.CheckConstraint("duration > 0", name="ck_appointments_positive_duration"),
        sa.CheckConstraint("end_time > appointment_time", name="ck_appointments_time_order"),
    )
    op.create_index("ix_appointments_customer_id", "appointments", ["customer_id"])
    op.create_index("ix_appointments_group_id", "appointments", ["group_id"])
    op.create_index("ix_appointments_date_status", "appointments", ["appointment_date", "status"])
    op.create_index("ix_appointments_technician_date", "appointments", ["technician_id", "appointment_date"])

    op.create_table(
        "service_records",
        sa.Column("service_record_id", sa.String(length=26), primary_key=True),
        sa.Column(
            "appointment_id",
            sa.String(length=26),
            sa.ForeignKey(
                "appointments.appointment_id",
                ondelete="RESTRICT",
                name="fk_service_records_appointment_id_appointments",
            ),
            nullable=False,
        ),
        sa.Column(
            "technician_id",
            sa.String(length=26),
            sa.ForeignKey("users.user_id", ondelete="SET NULL", name="fk_service_records_technician_id_users"),
        ),
        sa.Column(
            "customer_id",
            sa.String(length=26),
            sa.ForeignKey("users.user_id", ondelete="RESTRICT", name="fk_service_records_customer_id_users"),
            nullable=False,
        ),
        sa.Column("status", service_record_status, nullable=False, server_default="received"),
        sa.Column("progress_percentage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("timer_started", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("timer_start_time", sa.DateTime(timezone=True)),
        sa.Column("timer_duration", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("estimated_duration_minutes", sa.Integer()),
        sa.Column("live_updates", sa.JSON(), nullable=False),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
        sa.UniqueConstraint("appointment_id", name="uq_service_records_appointment_id"),
        sa.CheckConstraint("progress_percentage BETWEEN 0 AND 100", name="ck_service_records_progress_range"),
        sa.CheckConstraint("timer_duration >= 0", name="ck_service_records_timer_non_negative"),
    )
    op.create_index("ix_service_records_technician_id", "service_records", ["technician_id"])
    op.create_index("ix_service_records_customer_id", "service_records", ["customer_id"])

    op.create_table(
        "notifications",
        sa.Column("notification_id", sa.String(length=26), primary_key=True),
        sa.Column(
            "recipient_id",
            sa.String(length=26),
            sa.ForeignKey("users.user_id", ondelete="CASCADE", name="fk_notifications_recipient_id_users"),
            nullable=False,
        ),
        sa.Column("recipient_role", recipient_role, nullable=False),
        sa.Column("type", notification_type, nullable=False),
        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("message", sa.String(length=500), nullable=False),
        sa.Column("entity_type", sa.String(length=32)),
        sa.Column("entity_id", sa.String(length=26)),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True)),
        sa.Column("priority", notification_priority, nullable=False, server_default="medium"),
        sa.Column("action_url", sa.String(length=255)),
        *_timestamps(),
    )
    op.create_index("ix_notifications_recipient_read", "notifications", ["recipient_id", "is_read"])
    op.create_index("ix_notifications_read_at", "notifications", ["read_at"])


def downgrade() -> None:
    op.drop_index("ix_notifications_read_at", table_name="notifications")
    op.drop_index("ix_notifications_recipient_read", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("ix_service_records_customer_id", table_name="service_records")
    op.drop_index("ix_service_records_technician_id", table_name="service_records")
    op.drop_table("service_records")

    op.drop_index("ix_appointments_technician_date", table_name="appointments")
    op.drop_index("ix_appointments_date_status", table_name="appointments")
    op.drop_index("ix_appointments_group_id", table_name="appointments")
    op.drop_index("ix_appointments_customer_id", table_name="appointments")
    op.drop_table("appointments")

    op.drop_index("ix_vehicles_owner_id", table_name="vehicles")
    op.drop_table("vehicles")

    op.drop_index("ix_users_employee_id", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for enum in (
        notification_priority,
        notification_type,
        service_record_status,
        payment_status,
        appointment_status,
        user_role,
    ):
        enum.drop(bind, checkfirst=True)
