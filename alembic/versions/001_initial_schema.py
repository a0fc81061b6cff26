"""001 Initial schema - clients, staff, shows, intents, bookings, availability, webhook log

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'clients',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=True),
        sa.Column('name', sa.String(200), nullable=False, server_default=''),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(30), nullable=True),
        sa.Column('website', sa.String(255), nullable=True),
        sa.Column('logo_url', sa.String(500), nullable=True),
        sa.Column('contacts', sa.JSON(), nullable=True),
        sa.Column('locations', sa.JSON(), nullable=True),
        sa.Column('stripe_customer_id', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_clients_email', 'clients', ['email'], unique=True)
    op.create_index('ix_client_stripe_customer', 'clients', ['stripe_customer_id'])

    op.create_table(
        'staff',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(200), nullable=False, server_default=''),
        sa.Column('image', sa.String(500), nullable=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='staff'),
        sa.Column('hashed_password', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_staff_email', 'staff', ['email'], unique=True)

    op.create_table(
        'shows',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        'booking_intents',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('client_id', sa.String(36), nullable=False),
        sa.Column('show_id', sa.String(36), nullable=False),
        sa.Column('show_name', sa.String(255), nullable=True),
        sa.Column('show_data', sa.JSON(), nullable=True),
        sa.Column('dates_needed', sa.JSON(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('total_staff_needed', sa.Integer(), server_default='0'),
        sa.Column('booking_fee_cents', sa.Integer(), nullable=False),
        sa.Column('primary_contact_id', sa.String(36), nullable=True),
        sa.Column('primary_location_id', sa.String(36), nullable=True),
        sa.Column('stripe_checkout_session_id', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('consumed_at', sa.DateTime(), nullable=True),
        sa.Column('booking_id', sa.String(36), nullable=True),
    )
    op.create_index('ix_booking_intents_client_id', 'booking_intents', ['client_id'])
    op.create_index('ix_booking_intent_checkout_session', 'booking_intents', ['stripe_checkout_session_id'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('client_id', sa.String(36), nullable=False),
        sa.Column('show_id', sa.String(36), nullable=False),
        sa.Column('show_name', sa.String(255), nullable=True),
        sa.Column('show_data', sa.JSON(), nullable=True),
        sa.Column('dates_needed', sa.JSON(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('total_staff_needed', sa.Integer(), server_default='0'),
        sa.Column('status', sa.String(30), nullable=False, server_default='payment_pending'),
        sa.Column('payment_status', sa.String(30), nullable=False, server_default='payment_pending'),
        sa.Column('booking_fee_cents', sa.Integer(), server_default='0'),
        sa.Column('booking_fee_cents_paid', sa.Integer(), nullable=True),
        sa.Column('final_fee_cents_paid', sa.Integer(), nullable=True),
        sa.Column('stripe_customer_id', sa.String(255), nullable=True),
        sa.Column('stripe_checkout_session_id', sa.String(255), nullable=True),
        sa.Column('stripe_payment_intent_id', sa.String(255), nullable=True),
        sa.Column('stripe_final_payment_intent_id', sa.String(255), nullable=True),
        sa.Column('stripe_invoice_id', sa.String(255), nullable=True),
        sa.Column('final_calculation', sa.JSON(), nullable=True),
        sa.Column('primary_contact_id', sa.String(36), nullable=True),
        sa.Column('primary_location_id', sa.String(36), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_bookings_client_id', 'bookings', ['client_id'])
    op.create_index('ix_bookings_show_id', 'bookings', ['show_id'])
    op.create_index('ix_booking_client_created', 'bookings', ['client_id', 'created_at'])
    op.create_index('ix_booking_checkout_session', 'bookings', ['stripe_checkout_session_id'])
    op.create_index('ix_booking_status', 'bookings', ['status'])

    op.create_table(
        'availability',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('staff_id', sa.String(36), nullable=False),
        sa.Column('staff_name', sa.String(200), nullable=True),
        sa.Column('show_id', sa.String(36), nullable=False),
        sa.Column('available_dates', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('staff_id', 'show_id', name='uq_availability_staff_show'),
    )
    op.create_index('ix_availability_staff_id', 'availability', ['staff_id'])
    op.create_index('ix_availability_show_id', 'availability', ['show_id'])

    op.create_table(
        'webhook_event_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('provider', sa.String(50), nullable=False, server_default='stripe'),
        sa.Column('event_id', sa.String(255), nullable=False),
        sa.Column('event_type', sa.String(100), nullable=True),
        sa.Column('payload_json', sa.Text(), nullable=False),
        sa.Column('status', sa.String(20), server_default='processing'),
        sa.Column('attempts', sa.Integer(), server_default='0'),
        sa.Column('result_action', sa.String(50), nullable=True),
        sa.Column('result_booking_id', sa.String(36), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('received_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('provider', 'event_id', name='uq_webhook_event_provider_event'),
    )
    op.create_index('ix_webhook_event_status', 'webhook_event_logs', ['status', 'received_at'])


def downgrade():
    op.drop_table('webhook_event_logs')
    op.drop_table('availability')
    op.drop_table('bookings')
    op.drop_table('booking_intents')
    op.drop_table('shows')
    op.drop_table('staff')
    op.drop_table('clients')
