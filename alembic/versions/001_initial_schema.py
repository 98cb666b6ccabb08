"""initial schema - create all tables

Revision ID: 001
Revises: 
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# First issued token is TOKEN_NUMBER_START (1000).
TOKEN_COUNTER_SEED = 999


def upgrade() -> None:
    # Create users table (role as VARCHAR, not enum)
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(32), nullable=True),
        sa.Column('student_number', sa.String(64), nullable=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='student'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'vendor_settings',
        sa.Column('vendor_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('is_open', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    # Create print_jobs table (enums as VARCHAR)
    op.create_table(
        'print_jobs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('token_number', sa.Integer(), nullable=False, unique=True),
        sa.Column('batch_id', sa.String(36), nullable=False, index=True),
        sa.Column('student_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('vendor_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('file_ref', sa.String(255), nullable=False),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('content_type', sa.String(255), nullable=False),
        sa.Column('page_count', sa.Integer(), nullable=False),
        sa.Column('total_pages', sa.Integer(), nullable=True),
        sa.Column('page_range', sa.String(255), nullable=True),
        sa.Column('color_mode', sa.String(32), nullable=False, server_default='black-white'),
        sa.Column('copies', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('duplex', sa.String(32), nullable=False, server_default='single-sided'),
        sa.Column('paper_size', sa.String(32), nullable=False, server_default='A4'),
        sa.Column('orientation', sa.String(32), nullable=False, server_default='portrait'),
        sa.Column('pages_per_sheet', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('payment_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('payment_reference', sa.String(255), nullable=True, index=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_print_jobs_vendor_queue', 'print_jobs', ['vendor_id', 'status', 'created_at'])

    # One row per verified batch; the unique reference is the anti-replay guard
    op.create_table(
        'payment_references',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('reference', sa.String(255), nullable=False),
        sa.Column('batch_id', sa.String(36), nullable=False, index=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('reference', name='uq_payment_references_reference'),
    )

    # Gateway orders; amount is in major currency units, as charged by the order
    op.create_table(
        'payment_intents',
        sa.Column('order_id', sa.String(255), primary_key=True),
        sa.Column('batch_id', sa.String(36), nullable=False, index=True),
        sa.Column('student_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    token_counters = op.create_table(
        'token_counters',
        sa.Column('name', sa.String(64), primary_key=True),
        sa.Column('value', sa.Integer(), nullable=False),
    )
    op.bulk_insert(token_counters, [{'name': 'print_jobs', 'value': TOKEN_COUNTER_SEED}])


def downgrade() -> None:
    op.drop_table('token_counters')
    op.drop_table('payment_intents')
    op.drop_table('payment_references')
    op.drop_index('ix_print_jobs_vendor_queue', table_name='print_jobs')
    op.drop_table('print_jobs')
    op.drop_table('vendor_settings')
    op.drop_table('users')
