"""Dispatch batches and the blank-card ledger

Revision ID: 20261002_dispatch_inventory
Revises: 20261001_core
Create Date: 2026-10-02

This migration adds:
1. dispatch_batches (two-party signed delivery notes)
2. blank_card_requests (officer requests for central stock)
3. stock_movements (append-only ledger, user_id NULL = central pool)
4. issue_notes (signed physical handover)
5. the inventory.ledger_sequence settings row used as the ledger lock
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261002_dispatch_inventory'
down_revision = '20261001_core'
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. DISPATCH BATCHES
    # ==========================================================================
    op.create_table('dispatch_batches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('batch_id', sa.String(length=64), nullable=False),
        sa.Column('state', sa.String(length=120), nullable=False),
        sa.Column('card_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('batch_arn', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='prepared'),
        sa.Column('operator_name', sa.String(length=255), nullable=True),
        sa.Column('operator_signed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('officer_name', sa.String(length=255), nullable=True),
        sa.Column('officer_signed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivery_note_path', sa.String(length=512), nullable=True),
        sa.Column('confirmation_note_path', sa.String(length=512), nullable=True),
        sa.Column('created_by', sa.String(length=120), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('dispatched_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('dispatch_batches', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_dispatch_batches_batch_id'), ['batch_id'], unique=True)
        batch_op.create_index(batch_op.f('ix_dispatch_batches_state'), ['state'], unique=False)
        batch_op.create_index(batch_op.f('ix_dispatch_batches_batch_arn'), ['batch_arn'], unique=False)
        batch_op.create_index(batch_op.f('ix_dispatch_batches_status'), ['status'], unique=False)

    # ==========================================================================
    # 2. BLANK CARD REQUESTS
    # ==========================================================================
    op.create_table('blank_card_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('requester_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('needed_by', sa.Date(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('approved_qty', sa.Integer(), nullable=True),
        sa.Column('approver_id', sa.Integer(), nullable=True),
        sa.Column('decision_note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['requester_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['approver_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('blank_card_requests', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_blank_card_requests_requester_id'), ['requester_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_blank_card_requests_status'), ['status'], unique=False)

    # ==========================================================================
    # 3. STOCK MOVEMENTS (append-only)
    # ==========================================================================
    op.create_table('stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('qty', sa.Integer(), nullable=False),
        sa.Column('reference', sa.String(length=255), nullable=True),
        sa.Column('related_request_id', sa.Integer(), nullable=True),
        sa.Column('operator', sa.String(length=120), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['related_request_id'], ['blank_card_requests.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_movements', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stock_movements_type'), ['type'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_movements_related_request_id'), ['related_request_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_movements_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_movements_created_at'), ['created_at'], unique=False)
        batch_op.create_index('ix_stock_movements_user_created', ['user_id', 'created_at'], unique=False)

    # ==========================================================================
    # 4. ISSUE NOTES
    # ==========================================================================
    op.create_table('issue_notes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('issuer_name', sa.String(length=255), nullable=True),
        sa.Column('issuer_signed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('receiver_name', sa.String(length=255), nullable=True),
        sa.Column('receiver_signed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('issue_note_path', sa.String(length=512), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending_signatures'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['request_id'], ['blank_card_requests.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('issue_notes', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_issue_notes_request_id'), ['request_id'], unique=True)
        batch_op.create_index(batch_op.f('ix_issue_notes_status'), ['status'], unique=False)

    # ==========================================================================
    # 5. LEDGER LOCK ROW
    # ==========================================================================
    settings = sa.table('settings',
        sa.column('key', sa.String),
        sa.column('value', sa.Text),
        sa.column('updated_by', sa.String),
    )
    op.bulk_insert(settings, [
        {'key': 'inventory.ledger_sequence', 'value': '0', 'updated_by': 'migration'},
    ])


def downgrade():
    op.execute("DELETE FROM settings WHERE key = 'inventory.ledger_sequence'")
    op.drop_table('issue_notes')
    op.drop_table('stock_movements')
    op.drop_table('blank_card_requests')
    op.drop_table('dispatch_batches')
