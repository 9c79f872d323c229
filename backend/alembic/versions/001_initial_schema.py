"""Initial schema - tenancy graph, tasks and task children

Revision ID: 001
Revises:
Create Date: 2026-10-19

WHY: Creates every table of the entity graph. Each entity carries the
soft-delete columns (is_deleted, deleted_at, deleted_by, restored_at,
restored_by); rows are never physically removed by the application.
Enumerations are stored as VARCHAR so the same schema works on
PostgreSQL and SQLite.
"""
from typing import List, Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns() -> List[sa.Column]:
    """Timestamp and soft-delete columns shared by every entity table."""
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('deleted_by', sa.Integer(), nullable=True),
        sa.Column('restored_at', sa.DateTime(), nullable=True),
        sa.Column('restored_by', sa.Integer(), nullable=True),
    ]


def _tenancy_columns() -> List[sa.Column]:
    return [
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('department_id', sa.Integer(), sa.ForeignKey('departments.id'), nullable=False),
    ]


def _polymorphic_parent_columns() -> List[sa.Column]:
    return [
        sa.Column('parent_id', sa.Integer(), nullable=False),
        sa.Column('parent_model', sa.String(length=32), nullable=False),
    ]


ENTITY_TABLES = (
    'organizations',
    'departments',
    'users',
    'vendors',
    'materials',
    'tasks',
    'task_activities',
    'task_comments',
    'attachments',
)


def upgrade() -> None:
    """
    Create the entity graph tables, leaves last.

    WHY: Foreign keys follow ownership (organization -> department ->
    department-owned entities -> task children), so tables are created in
    that order.
    """
    op.create_table(
        'organizations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('email', sa.String(length=50), nullable=True),
        sa.Column('is_platform_org', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_by', sa.Integer(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_organizations_name', 'organizations', ['name'], unique=True)

    op.create_table(
        'departments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'name', name='uq_departments_organization_name'),
    )
    op.create_index('ix_departments_organization_id', 'departments', ['organization_id'])

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('first_name', sa.String(length=20), nullable=False),
        sa.Column('last_name', sa.String(length=20), nullable=False),
        sa.Column('email', sa.String(length=50), nullable=False),
        sa.Column('position', sa.String(length=100), nullable=True),
        sa.Column('role', sa.String(length=10), nullable=False, server_default='User'),
        *_tenancy_columns(),
        sa.Column('is_platform_user', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_by', sa.Integer(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'vendors',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('contact_person', sa.String(length=100), nullable=True),
        sa.Column('email', sa.String(length=50), nullable=True),
        sa.Column('phone', sa.String(length=20), nullable=True),
        *_tenancy_columns(),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'materials',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=12), nullable=False, server_default='Other'),
        sa.Column('unit_type', sa.String(length=20), nullable=False, server_default='pcs'),
        sa.Column('price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        *_tenancy_columns(),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
    )

    # WHY: One table for all task variants; task_type is the discriminator
    op.create_table(
        'tasks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('task_type', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=50), nullable=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=11), nullable=False),
        sa.Column('priority', sa.String(length=6), nullable=False),
        *_tenancy_columns(),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=True),
        sa.Column('due_date', sa.DateTime(), nullable=True),
        sa.Column('vendor_id', sa.Integer(), sa.ForeignKey('vendors.id'), nullable=True),
        sa.Column('estimated_cost', sa.Numeric(12, 2), nullable=True),
        sa.Column('actual_cost', sa.Numeric(12, 2), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tasks_task_type', 'tasks', ['task_type'])
    op.create_index('ix_tasks_vendor_id', 'tasks', ['vendor_id'])

    for table in ('task_watchers', 'task_assignees'):
        op.create_table(
            table,
            sa.Column('task_id', sa.Integer(), sa.ForeignKey('tasks.id'), nullable=False),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.PrimaryKeyConstraint('task_id', 'user_id'),
        )
        op.create_index(f'ix_{table}_user_id', table, ['user_id'])

    op.create_table(
        'task_activities',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('activity', sa.Text(), nullable=False),
        *_polymorphic_parent_columns(),
        *_tenancy_columns(),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'task_activity_materials',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('activity_id', sa.Integer(), sa.ForeignKey('task_activities.id'), nullable=False),
        sa.Column('material_id', sa.Integer(), sa.ForeignKey('materials.id'), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_task_activity_materials_activity_id', 'task_activity_materials', ['activity_id'])
    op.create_index('ix_task_activity_materials_material_id', 'task_activity_materials', ['material_id'])

    op.create_table(
        'task_comments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('comment', sa.Text(), nullable=False),
        *_polymorphic_parent_columns(),
        *_tenancy_columns(),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'comment_mentions',
        sa.Column('comment_id', sa.Integer(), sa.ForeignKey('task_comments.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.PrimaryKeyConstraint('comment_id', 'user_id'),
    )
    op.create_index('ix_comment_mentions_user_id', 'comment_mentions', ['user_id'])

    op.create_table(
        'attachments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('filename', sa.String(length=255), nullable=False),
        sa.Column('file_url', sa.String(length=1024), nullable=False),
        sa.Column('file_type', sa.String(length=8), nullable=False),
        sa.Column('file_size', sa.BigInteger(), nullable=False),
        *_polymorphic_parent_columns(),
        *_tenancy_columns(),
        sa.Column('uploaded_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
    )

    # Indexes used by scope filters and cascade traversal
    # WHY: Every scope filter constrains organization_id/department_id and
    # every cascade level looks children up by their parent column
    for table in ENTITY_TABLES:
        op.create_index(f'ix_{table}_is_deleted', table, ['is_deleted'])
    for table in ('users', 'vendors', 'materials', 'tasks', 'task_activities', 'task_comments', 'attachments'):
        op.create_index(f'ix_{table}_organization_id', table, ['organization_id'])
        op.create_index(f'ix_{table}_department_id', table, ['department_id'])
    for table in ('task_activities', 'task_comments', 'attachments'):
        op.create_index(f'ix_{table}_parent', table, ['parent_id', 'parent_model'])


def downgrade() -> None:
    """
    Drop all tables, leaves first.

    WHY: Downgrade allows rollback if issues are discovered after deployment.
    """
    for table in (
        'attachments',
        'comment_mentions',
        'task_comments',
        'task_activity_materials',
        'task_activities',
        'task_assignees',
        'task_watchers',
        'tasks',
        'materials',
        'vendors',
        'users',
        'departments',
        'organizations',
    ):
        op.drop_table(table)
