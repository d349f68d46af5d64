"""create_containers

Revision ID: 0001
Revises:
Create Date: 2025-11-03 09:12:40.118302

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'containers',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='stopped'),
        sa.Column('template', sa.String(length=32), nullable=False),
        sa.Column('node_id', sa.String(length=64), nullable=True),
        sa.Column('config', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_containers'),
        sa.UniqueConstraint('name', name='uq_containers_name'),
        sa.CheckConstraint(
            "status IN ('stopped', 'starting', 'running', 'stopping', 'frozen', 'error')",
            name='valid_status',
        ),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('containers')
