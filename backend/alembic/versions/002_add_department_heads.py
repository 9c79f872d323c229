"""Add department heads

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

WHY: A department may name one of the organization's users as its head.
departments.hod_id holds the reference and users.is_hod flags the user.
The reference is plain data (no foreign key) because users already point
at departments; a restored department drops a head that is no longer
valid.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add departments.hod_id and users.is_hod."""
    op.add_column('departments', sa.Column('hod_id', sa.Integer(), nullable=True))
    op.create_index('ix_departments_hod_id', 'departments', ['hod_id'])

    op.add_column(
        'users',
        sa.Column('is_hod', sa.Boolean(), nullable=False, server_default=sa.false()),
    )


def downgrade() -> None:
    """Drop the department head columns."""
    with op.batch_alter_table('users') as batch_op:
        batch_op.drop_column('is_hod')

    op.drop_index('ix_departments_hod_id', table_name='departments')
    with op.batch_alter_table('departments') as batch_op:
        batch_op.drop_column('hod_id')
