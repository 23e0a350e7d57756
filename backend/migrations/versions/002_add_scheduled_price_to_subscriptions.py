"""Add scheduled plan change columns to subscriptions

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Columns may already exist when created by Base.metadata.create_all
    columns = {c['name'] for c in inspect(op.get_bind()).get_columns('subscriptions')}

    if 'scheduled_price_id' not in columns:
        op.add_column('subscriptions', sa.Column('scheduled_price_id', sa.String(length=255), nullable=True))
    if 'scheduled_change_date' not in columns:
        op.add_column('subscriptions', sa.Column('scheduled_change_date', sa.DateTime(timezone=True), nullable=True))


def downgrade() -> None:
    op.drop_column('subscriptions', 'scheduled_change_date')
    op.drop_column('subscriptions', 'scheduled_price_id')
