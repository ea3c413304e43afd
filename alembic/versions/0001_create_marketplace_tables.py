"""create_marketplace_tables

Revision ID: 0001_create_marketplace_tables
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_create_marketplace_tables'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BOOKING_STATUSES = ('pending', 'confirmed', 'in_progress', 'completed', 'cancelled', 'refunded')
PAYMENT_STATUSES = ('pending', 'paid', 'failed', 'refunded')
PAYMENT_TYPES = ('instant', 'cash_on_delivery')


def upgrade():
    op.create_table(
        'tenants',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=100), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_tenants_slug', 'tenants', ['slug'], unique=True)

    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('tenant_id', sa.String(length=36), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone_number', sa.String(length=20)),
        sa.Column('first_name', sa.String(length=100)),
        sa.Column('last_name', sa.String(length=100)),
        sa.Column('role', sa.Enum('customer', 'provider', 'admin', name='userrole', native_enum=False)),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
        sa.UniqueConstraint('tenant_id', 'email', name='uq_users_tenant_email'),
    )
    op.create_index('ix_users_tenant_id', 'users', ['tenant_id'])
    op.create_index('ix_users_email', 'users', ['email'])

    op.create_table(
        'service_providers',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('tenant_id', sa.String(length=36), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=False, unique=True),
        sa.Column('business_name', sa.String(length=255), nullable=False),
        sa.Column('commission_rate', sa.Float(), nullable=False),
        sa.Column('rating', sa.Float()),
        sa.Column('total_reviews', sa.Integer()),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_service_providers_tenant_id', 'service_providers', ['tenant_id'])

    op.create_table(
        'services',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('tenant_id', sa.String(length=36), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('provider_id', sa.String(length=36), sa.ForeignKey('service_providers.id'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('base_price', sa.Float(), nullable=False),
        sa.Column('currency', sa.String(length=10)),
        sa.Column('duration_minutes', sa.Integer()),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_services_tenant_id', 'services', ['tenant_id'])
    op.create_index('ix_services_provider_id', 'services', ['provider_id'])

    op.create_table(
        'service_addons',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('service_id', sa.String(length=36), sa.ForeignKey('services.id'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_service_addons_service_id', 'service_addons', ['service_id'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('tenant_id', sa.String(length=36), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('customer_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('provider_id', sa.String(length=36), sa.ForeignKey('service_providers.id'), nullable=False),
        sa.Column('service_id', sa.String(length=36), sa.ForeignKey('services.id'), nullable=False),
        sa.Column('booking_type', sa.String(length=20)),
        sa.Column('status', sa.Enum(*BOOKING_STATUSES, name='bookingstatus', native_enum=False, length=20), nullable=False),
        sa.Column('scheduled_at', sa.DateTime(), nullable=False),
        sa.Column('ends_at', sa.DateTime(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('total_amount', sa.Float(), nullable=False),
        sa.Column('commission_amount', sa.Float(), nullable=False),
        sa.Column('currency', sa.String(length=10)),
        sa.Column('payment_status', sa.Enum(*PAYMENT_STATUSES, name='paymentstatus', native_enum=False, length=20), nullable=False),
        sa.Column('payment_type', sa.Enum(*PAYMENT_TYPES, name='paymenttype', native_enum=False, length=20), nullable=False),
        sa.Column('customer_address', sa.Text()),
        sa.Column('notes', sa.Text()),
        sa.Column('completed_at', sa.DateTime()),
        sa.Column('cancellation_reason', sa.Text()),
        sa.Column('cancelled_by', sa.String(length=36), sa.ForeignKey('users.id')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_bookings_tenant_id', 'bookings', ['tenant_id'])
    op.create_index('ix_bookings_customer_id', 'bookings', ['customer_id'])
    op.create_index('ix_bookings_provider_timeline', 'bookings', ['tenant_id', 'provider_id', 'scheduled_at'])

    op.create_table(
        'booking_addons',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('booking_id', sa.String(length=36), sa.ForeignKey('bookings.id'), nullable=False),
        sa.Column('addon_id', sa.String(length=36), sa.ForeignKey('service_addons.id'), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_booking_addons_booking_id', 'booking_addons', ['booking_id'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tenant_id', sa.String(length=36), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id')),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('resource_type', sa.String(length=50), nullable=False),
        sa.Column('resource_id', sa.String(length=36)),
        sa.Column('changes', sa.JSON()),
        sa.Column('ip_address', sa.String(length=50)),
        sa.Column('user_agent', sa.String(length=500)),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_audit_logs_tenant_id', 'audit_logs', ['tenant_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_resource_id', 'audit_logs', ['resource_id'])


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('booking_addons')
    op.drop_table('bookings')
    op.drop_table('service_addons')
    op.drop_table('services')
    op.drop_table('service_providers')
    op.drop_table('users')
    op.drop_table('tenants')
