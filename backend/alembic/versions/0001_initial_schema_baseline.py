"""initial_schema_baseline

Revision ID: 0001_baseline
Revises: 
Create Date: 2026-10-17 09:00:00.000000

Baseline migration for the scheduling schema. Creates every table from the
current model definitions: directory tables (users, doctors, doctor_schedules,
doctor_vacation_days, patients), time_slots, appointments,
appointment_reminders, assessments, audit_logs and notifications, with their
check constraints, unique constraints and indexes (including the partial
unique index that keeps one active appointment per slot).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# Import all models to ensure they're registered with Base.metadata
from core.database import Base
import models  # noqa: F401


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables, constraints and indexes from the SQLAlchemy models."""
    Base.metadata.create_all(bind=op.get_bind())

    # Calendar lookups filter slots by doctor and external tag together
    op.create_index(
        'idx_time_slots_doctor_external_event',
        'time_slots',
        ['doctor_id', 'external_event_id'],
        postgresql_where=sa.text("external_event_id IS NOT NULL"),
    )


def downgrade() -> None:
    """Drop all tables created by the baseline migration."""
    op.drop_index('idx_time_slots_doctor_external_event', table_name='time_slots')
    Base.metadata.drop_all(bind=op.get_bind())
