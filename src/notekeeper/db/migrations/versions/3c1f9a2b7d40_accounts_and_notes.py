"""accounts and notes

Creates the accounts table (credentials, verification state, embedded
verification challenge) and the notes table keyed by owner.

Revision ID: 3c1f9a2b7d40
Revises:
Create Date: 2026-10-19 09:12:04.517230
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f9a2b7d40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'accounts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=100), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=True),
        sa.Column('external_id', sa.String(length=255), nullable=True),
        sa.Column('avatar_url', sa.Text(), nullable=True),
        sa.Column('verified', sa.Boolean(), nullable=False),
        sa.Column('login_method', sa.String(length=20), nullable=False),
        sa.Column('challenge_code', sa.String(length=16), nullable=True),
        sa.Column('challenge_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index(
        'idx_accounts_external_id', 'accounts', ['external_id'], unique=True
    )

    op.create_table(
        'notes',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('owner_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('content', sa.String(length=5000), nullable=False),
        sa.Column('color', sa.String(length=7), nullable=False),
        sa.Column('pinned', sa.Boolean(), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'idx_notes_owner_created', 'notes', ['owner_id', 'created_at']
    )


def downgrade() -> None:
    op.drop_index('idx_notes_owner_created', table_name='notes')
    op.drop_table('notes')
    op.drop_index('idx_accounts_external_id', table_name='accounts')
    op.drop_table('accounts')
