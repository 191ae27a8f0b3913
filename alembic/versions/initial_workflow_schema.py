"""initial workflow schema

Creates users with their zones, issues with status history, comments and
attachments, notifications, push subscriptions and the app_settings row.

Revision ID: initial_workflow_schema
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'initial_workflow_schema'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum('citizen', 'low_admin', 'high_admin', name='userrole')
issue_status = sa.Enum('pending', 'in_progress', 'pending_verification', 'verified_solved', 'escalated',
                       'reopened', name='issuestatus')
issue_category = sa.Enum('pothole', 'streetlight', 'garbage', 'water_leak', 'traffic_signal', 'road_damage',
                         'sewage', 'parks', 'other', name='issuecategory')
issue_priority = sa.Enum('low', 'medium', 'high', 'urgent', name='issuepriority')
attachment_kind = sa.Enum('photo', 'work_proof', name='attachmentkind')
notification_type = sa.Enum('issue_created', 'issue_assigned', 'issue_updated', 'issue_escalated',
                            'issue_resolved', 'verification_required', 'issue_reopened', 'comment_added',
                            'status_changed', name='notificationtype')
notification_priority = sa.Enum('low', 'medium', 'high', name='notificationpriority')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('phone', sa.String(length=30), nullable=True),
        sa.Column('role', user_role, nullable=False),
        sa.Column('department', sa.String(length=120), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_name', 'users', ['name'])
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'user_zones',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('zone', sa.String(length=120), nullable=False),
        sa.UniqueConstraint('user_id', 'zone', name='uq_user_zone'),
    )
    op.create_index('ix_user_zones_user_id', 'user_zones', ['user_id'])
    op.create_index('ix_user_zones_zone', 'user_zones', ['zone'])

    op.create_table(
        'issues',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.String(length=4000), nullable=False),
        sa.Column('category', issue_category, nullable=False),
        sa.Column('priority', issue_priority, nullable=False),
        sa.Column('status', issue_status, nullable=False),
        sa.Column('lat', sa.Float(), nullable=False),
        sa.Column('lng', sa.Float(), nullable=False),
        sa.Column('address', sa.String(length=300), nullable=False),
        sa.Column('zone', sa.String(length=120), nullable=False),
        sa.Column('reported_by_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('assigned_to_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('assigned_department', sa.String(length=120), nullable=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('escalated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('escalation_reason', sa.String(length=500), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('is_archived', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    for col in ('title', 'category', 'priority', 'status', 'zone', 'reported_by_id', 'assigned_to_id',
                'assigned_department', 'is_archived', 'created_at'):
        op.create_index(f'ix_issues_{col}', 'issues', [col])
    op.create_index('ix_issues_lat_lng', 'issues', ['lat', 'lng'])

    op.create_table(
        'issue_status_history',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('issue_id', sa.Integer(), sa.ForeignKey('issues.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('changed_by_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('changed_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('reason', sa.String(length=500), nullable=True),
    )
    op.create_index('ix_issue_status_history_issue_id', 'issue_status_history', ['issue_id'])
    op.create_index('ix_issue_status_history_changed_at', 'issue_status_history', ['changed_at'])

    op.create_table(
        'issue_comments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('issue_id', sa.Integer(), sa.ForeignKey('issues.id', ondelete='CASCADE'), nullable=False),
        sa.Column('author_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('text', sa.String(length=4000), nullable=False),
        sa.Column('is_internal', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_issue_comments_issue_id', 'issue_comments', ['issue_id'])
    op.create_index('ix_issue_comments_created_at', 'issue_comments', ['created_at'])

    op.create_table(
        'issue_attachments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('issue_id', sa.Integer(), sa.ForeignKey('issues.id', ondelete='CASCADE'), nullable=False),
        sa.Column('kind', attachment_kind, nullable=False),
        sa.Column('url', sa.String(length=500), nullable=False),
        sa.Column('content_type', sa.String(length=100), nullable=False),
        sa.Column('size', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('uploaded_by_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_issue_attachments_issue_id', 'issue_attachments', ['issue_id'])
    op.create_index('ix_issue_attachments_kind', 'issue_attachments', ['kind'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('recipient_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('issue_id', sa.Integer(), sa.ForeignKey('issues.id', ondelete='CASCADE'), nullable=True),
        sa.Column('type', notification_type, nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.String(length=1000), nullable=False),
        sa.Column('priority', notification_priority, nullable=False),
        sa.Column('action_url', sa.String(length=300), nullable=True),
        sa.Column('is_read', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_notifications_recipient_id', 'notifications', ['recipient_id'])
    op.create_index('ix_notifications_type', 'notifications', ['type'])
    op.create_index('ix_notifications_recipient_read', 'notifications', ['recipient_id', 'is_read', 'created_at'])

    op.create_table(
        'push_subscriptions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('endpoint', sa.String(length=500), nullable=False, unique=True),
        sa.Column('p256dh', sa.String(length=200), nullable=False),
        sa.Column('auth', sa.String(length=100), nullable=False),
    )
    op.create_index('ix_push_subscriptions_user_id', 'push_subscriptions', ['user_id'])

    op.create_table(
        'app_settings',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('auto_assign_issues', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('auto_escalate_days', sa.Integer(), server_default='5', nullable=False),
        sa.Column('email_notifications_enabled', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('push_notifications_enabled', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    """Downgrade schema."""
    for table in ('app_settings', 'push_subscriptions', 'notifications', 'issue_attachments', 'issue_comments',
                  'issue_status_history', 'issues', 'user_zones', 'users'):
        op.drop_table(table)
    bind = op.get_bind()
    for enum in (notification_priority, notification_type, attachment_kind, issue_priority, issue_category,
                 issue_status, user_role):
        enum.drop(bind, checkfirst=True)
