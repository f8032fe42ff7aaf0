"""create_accounts_and_refresh_fingerprints

Revision ID: 3f9c2a71b0d4
Revises:
Create Date: 2026-10-18 10:12:41.503218

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c2a71b0d4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'accounts',
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('roles', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_accounts_email', 'accounts', ['email'], unique=True)

    # Each row is one live refresh token, stored as its HMAC fingerprint
    op.create_table(
        'refresh_fingerprints',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('account_id', sa.String(length=32), nullable=False),
        sa.Column('fingerprint', sa.String(length=64), nullable=False),
        sa.Column('issued_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(
            ['account_id'],
            ['accounts.id'],
            name='fk_refresh_fingerprints_account_id',
            onupdate='CASCADE',
            ondelete='CASCADE',
        ),
    )
    op.create_index('idx_refresh_fingerprints_account_id', 'refresh_fingerprints', ['account_id'])
    op.create_index(
        'idx_refresh_fingerprints_fingerprint', 'refresh_fingerprints', ['fingerprint'], unique=True
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('idx_refresh_fingerprints_fingerprint', table_name='refresh_fingerprints')
    op.drop_index('idx_refresh_fingerprints_account_id', table_name='refresh_fingerprints')
    op.drop_table('refresh_fingerprints')

    op.drop_index('idx_accounts_email', table_name='accounts')
    op.drop_table('accounts')
