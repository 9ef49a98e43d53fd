"""create_booking_payment_tables

Revision ID: 3b9f2c41d7a0
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3b9f2c41d7a0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create bookings table (payment reconciliation columns only)
    op.create_table(
        'bookings',
        sa.Column('id', sa.String(length=64), nullable=False, comment='预订ID'),
        sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='unpaid', comment='支付状态: unpaid/pending/paid/failed/refunded'),
        sa.Column('last_event_reference', sa.String(length=100), nullable=True, comment='最近一次已应用事件的引用号'),
        sa.Column('last_provider_status', sa.String(length=20), nullable=True, comment='最近一次已应用事件的渠道状态'),
        sa.Column('last_event_at', sa.DateTime(timezone=True), nullable=True, comment='最近一次已应用事件的渠道时间'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id', name='pk_bookings'),
    )
    op.create_index('ix_bookings_payment_status', 'bookings', ['payment_status'], unique=False)
    op.create_index('ix_bookings_last_event_reference', 'bookings', ['last_event_reference'], unique=False)
    op.create_index('ix_bookings_status_updated', 'bookings', ['payment_status', 'updated_at'], unique=False)

    # Create payment_events table (append-only audit log)
    op.create_table(
        'payment_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('reference', sa.String(length=100), nullable=False, comment='支付引用号'),
        sa.Column('booking_id', sa.String(length=64), nullable=False, comment='预订ID'),
        sa.Column('provider_status', sa.String(length=20), nullable=False, comment='渠道状态: success/failed/pending/abandoned/reversed'),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False, comment='金额（主单位）'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='货币代码 ISO-4217'),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False, comment='渠道事件时间'),
        sa.Column('received_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='接收时间'),
        sa.Column('source', sa.String(length=20), nullable=False, server_default='webhook', comment='来源: webhook/verification'),
        sa.Column('outcome', sa.String(length=20), nullable=False, comment='对账结果: applied/conflict'),
        sa.Column('detail', sa.Text(), nullable=True, comment='冲突原因'),
        sa.Column('raw_payload', sa.JSON(), nullable=True, comment='清洗后的原始载荷'),
        sa.ForeignKeyConstraint(
            ['booking_id'], ['bookings.id'],
            name='fk_payment_events_booking_id_bookings', ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_payment_events'),
        sa.UniqueConstraint('reference', 'provider_status', name='uq_payment_events_reference_status'),
    )
    op.create_index('ix_payment_events_reference', 'payment_events', ['reference'], unique=False)
    op.create_index('ix_payment_events_booking_id', 'payment_events', ['booking_id'], unique=False)
    op.create_index('ix_payment_events_booking_received', 'payment_events', ['booking_id', 'received_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_payment_events_booking_received', table_name='payment_events')
    op.drop_index('ix_payment_events_booking_id', table_name='payment_events')
    op.drop_index('ix_payment_events_reference', table_name='payment_events')
    op.drop_table('payment_events')

    op.drop_index('ix_bookings_status_updated', table_name='bookings')
    op.drop_index('ix_bookings_last_event_reference', table_name='bookings')
    op.drop_index('ix_bookings_payment_status', table_name='bookings')
    op.drop_table('bookings')
