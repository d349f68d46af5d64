"""add_listing_indexes

Revision ID: 0002
Revises: 0001
Create Date: 2025-11-03 09:31:05.442917

"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '0002'
down_revision: Union[str, Sequence[str], None] = '0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Filtered listing by status
    op.create_index('ix_containers_status', 'containers', ['status'], unique=False)
    # Stable default ordering for listings
    op.create_index('ix_containers_created_at', 'containers', ['created_at'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_containers_created_at', table_name='containers')
    op.drop_index('ix_containers_status', table_name='containers')
