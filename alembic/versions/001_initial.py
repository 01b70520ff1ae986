"""Initial migration

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create translations table
    op.create_table(
        'translations',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('hash', sa.String(10), nullable=False, index=True),
        sa.Column('lang', sa.String(20), nullable=False, index=True),
        sa.Column('translated_text', sa.Text(), nullable=False),
        sa.Column('source_digest', sa.String(64), nullable=True, unique=True),
        sa.Column('scope_level', sa.Integer(), nullable=False, default=50),
        sa.Column('human', sa.Boolean(), nullable=False, default=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('modified_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('hash', 'lang', name='uq_translations_hash_lang'),
    )

    # Create scope_mappings table
    op.create_table(
        'scope_mappings',
        sa.Column('hash', sa.String(10), primary_key=True),
        sa.Column('scope_id', sa.Integer(), primary_key=True, index=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    # Create tagging_cursors table
    op.create_table(
        'tagging_cursors',
        sa.Column('content_type', sa.String(100), primary_key=True),
        sa.Column('table_name', sa.String(100), nullable=False),
        sa.Column('last_id', sa.Integer(), nullable=False, default=0),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('tagging_cursors')
    op.drop_table('scope_mappings')
    op.drop_table('translations')
