"""add blacklisted_tokens table for logged-out JWT fingerprints

Revision ID: 002
Revises: 001
Create Date: 2026-10-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    is_sqlite = bind.dialect.name == 'sqlite'

    timestamp_default = sa.text("(datetime('now'))") if is_sqlite else sa.text('now()')

    op.create_table(
        'blacklisted_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('reason', sa.String(length=32), nullable=False, server_default='logout'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=timestamp_default),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "reason IN ('logout', 'security_revocation', 'password_changed')",
            name='ck_blacklisted_tokens_reason'
        ),
    )
    # Primary lookup path: fingerprint check on every authenticated request
    op.create_index('ix_blacklisted_tokens_token_hash', 'blacklisted_tokens', ['token_hash'], unique=True)
    op.create_index('ix_blacklisted_tokens_user_id', 'blacklisted_tokens', ['user_id'])
    # Secondary path: periodic sweep (DELETE WHERE expires_at <= now())
    op.create_index('ix_blacklisted_tokens_expires_at', 'blacklisted_tokens', ['expires_at'])


def downgrade() -> None:
    op.drop_index('ix_blacklisted_tokens_expires_at', table_name='blacklisted_tokens')
    op.drop_index('ix_blacklisted_tokens_user_id', table_name='blacklisted_tokens')
    op.drop_index('ix_blacklisted_tokens_token_hash', table_name='blacklisted_tokens')
    op.drop_table('blacklisted_tokens')
