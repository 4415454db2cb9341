"""Initial marketplace schema

Creates users and fisher profiles, subscriptions, group trips with bookings
and participant approvals, payments, reviews, rewards and badges,
competitions and seasons, export history, scheduled reports and the
fishing diary.

Revision ID: 3f9c2a7d1e84
Revises:
Create Date: 2026-10-19 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op

from app.db.base import Base
import app.models  # noqa: F401

# revision identifiers, used by Alembic.
revision: str = "3f9c2a7d1e84"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Tables, indexes and enum types straight from the model metadata
    Base.metadata.create_all(bind=op.get_bind())


def downgrade() -> None:
    Base.metadata.drop_all(bind=op.get_bind())
