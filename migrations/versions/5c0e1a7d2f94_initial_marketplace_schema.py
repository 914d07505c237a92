"""initial_marketplace_schema

Revision ID: 5c0e1a7d2f94
Revises:
Create Date: 2026-10-19 10:12:41.208114

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5c0e1a7d2f94'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


user_role = sa.Enum('SERVICE_PROVIDER', 'COMMUNITY_MEMBER', 'ADMIN', name='user_role')
employment_status = sa.Enum('EMPLOYED', 'UNEMPLOYED', name='employment_status')
service_request_status = sa.Enum('WAITING', 'WORKING', 'COMPLETE', 'CANCELLED', name='service_request_status')
booking_status = sa.Enum('WORKING', 'COMPLETE', name='booking_status')
notification_type = sa.Enum(
    'SERVICE_REQUEST', 'SERVICE_REQUEST_POSTED', 'SERVICE_OFFER', 'OFFER_ACCEPTED',
    'OFFER_REJECTED', 'BOOKING_COMPLETED', 'REQUEST_CANCELLED', 'SERVICE_EXPIRED',
    'REVIEW_RECEIVED', 'ACCOUNT_VERIFIED', 'ACCOUNT_BANNED', 'SYSTEM_UPDATE',
    name='notification_type',
)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('username', sa.String(length=50), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('birthdate', sa.Date(), nullable=True),
        sa.Column('employed', employment_status, nullable=True),
        sa.Column('profile_pic', sa.String(length=500), nullable=True),
        sa.Column('role', user_role, nullable=False),
        sa.Column('skills', sa.JSON(), nullable=False),
        sa.Column('average_rating', sa.Float(), nullable=False),
        sa.Column('total_reviews', sa.Integer(), nullable=False),
        sa.Column('verified', sa.Boolean(), nullable=False),
        sa.Column('banned', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('average_rating >= 0 AND average_rating <= 5', name='user_rating_range'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'service_requests',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('requester_id', sa.Uuid(), nullable=False),
        sa.Column('target_provider_id', sa.Uuid(), nullable=True),
        sa.Column('service_provider_id', sa.Uuid(), nullable=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('type_of_work', sa.String(length=100), nullable=False),
        sa.Column('budget', sa.Numeric(10, 2), nullable=True),
        sa.Column('notes', sa.String(length=1000), nullable=True),
        sa.Column('preferred_date', sa.Date(), nullable=True),
        sa.Column('time', sa.String(length=20), nullable=False),
        sa.Column('status', service_request_status, nullable=False),
        sa.Column('eta', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('cancellation_reason', sa.String(length=500), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "(status IN ('WAITING', 'CANCELLED') AND service_provider_id IS NULL) "
            "OR (status IN ('WORKING', 'COMPLETE') AND service_provider_id IS NOT NULL)",
            name='service_request_provider_matches_status',
        ),
        sa.CheckConstraint('budget IS NULL OR budget >= 0', name='service_request_budget_positive'),
        sa.ForeignKeyConstraint(['requester_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['target_provider_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['service_provider_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_service_requests_requester_id', 'service_requests', ['requester_id'])
    op.create_index('ix_service_requests_target_provider_id', 'service_requests', ['target_provider_id'])
    op.create_index('ix_service_requests_service_provider_id', 'service_requests', ['service_provider_id'])
    op.create_index('ix_service_requests_type_of_work', 'service_requests', ['type_of_work'])
    op.create_index('ix_service_requests_status', 'service_requests', ['status'])
    op.create_index('ix_service_requests_expires_at', 'service_requests', ['expires_at'])
    op.create_index('ix_service_requests_created_at', 'service_requests', ['created_at'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('requester_id', sa.Uuid(), nullable=False),
        sa.Column('provider_id', sa.Uuid(), nullable=False),
        sa.Column('service_request_id', sa.Uuid(), nullable=False),
        sa.Column('status', booking_status, nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['requester_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['provider_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['service_request_id'], ['service_requests.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_bookings_requester_id', 'bookings', ['requester_id'])
    op.create_index('ix_bookings_provider_id', 'bookings', ['provider_id'])
    op.create_index('ix_bookings_service_request_id', 'bookings', ['service_request_id'], unique=True)
    op.create_index('ix_bookings_status', 'bookings', ['status'])

    op.create_table(
        'reviews',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('reviewer_id', sa.Uuid(), nullable=False),
        sa.Column('reviewee_id', sa.Uuid(), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('comment', sa.String(length=1000), nullable=True),
        sa.Column('images', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('rating >= 1 AND rating <= 5', name='review_rating_range'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['reviewer_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['reviewee_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_id', 'reviewer_id', name='review_once_per_booking'),
    )
    op.create_index('ix_reviews_booking_id', 'reviews', ['booking_id'])
    op.create_index('ix_reviews_reviewee_id', 'reviews', ['reviewee_id'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.String(length=1000), nullable=False),
        sa.Column('type', notification_type, nullable=False),
        sa.Column('meta', sa.JSON(), nullable=False),
        sa.Column('read', sa.Boolean(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_read', 'notifications', ['read'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])

    op.create_table(
        'idempotency_records',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('key', sa.String(length=255), nullable=False),
        sa.Column('operation', sa.String(length=255), nullable=False),
        sa.Column('status_code', sa.Integer(), nullable=False),
        sa.Column('response_body', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'key', name='idempotency_key_per_user'),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('idempotency_records')
    op.drop_index('ix_notifications_created_at', table_name='notifications')
    op.drop_index('ix_notifications_read', table_name='notifications')
    op.drop_index('ix_notifications_user_id', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('ix_reviews_reviewee_id', table_name='reviews')
    op.drop_index('ix_reviews_booking_id', table_name='reviews')
    op.drop_table('reviews')
    op.drop_index('ix_bookings_status', table_name='bookings')
    op.drop_index('ix_bookings_service_request_id', table_name='bookings')
    op.drop_index('ix_bookings_provider_id', table_name='bookings')
    op.drop_index('ix_bookings_requester_id', table_name='bookings')
    op.drop_table('bookings')
    op.drop_index('ix_service_requests_created_at', table_name='service_requests')
    op.drop_index('ix_service_requests_expires_at', table_name='service_requests')
    op.drop_index('ix_service_requests_status', table_name='service_requests')
    op.drop_index('ix_service_requests_type_of_work', table_name='service_requests')
    op.drop_index('ix_service_requests_service_provider_id', table_name='service_requests')
    op.drop_index('ix_service_requests_target_provider_id', table_name='service_requests')
    op.drop_index('ix_service_requests_requester_id', table_name='service_requests')
    op.drop_table('service_requests')
    op.drop_index('ix_users_role', table_name='users')
    op.drop_index('ix_users_username', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')

    # PostgreSQL keeps named enum types after their tables are dropped
    bind = op.get_bind()
    for enum_type in (notification_type, booking_status, service_request_status, user_role, employment_status):
        enum_type.drop(bind, checkfirst=True)
