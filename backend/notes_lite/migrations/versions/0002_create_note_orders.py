"""create_note_orders

Revision ID: 0002
Revises: 0001
Create Date: 2025-09-21 16:40:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0002'
down_revision: Union[str, None] = '0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Create the per-bucket ordering table.

    Notes that already exist get an order record appended to the end of the
    bucket matching their flags, oldest first.
    """
    note_orders = op.create_table(
        'note_orders',
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('note_id', sa.String(36), nullable=False),
        sa.Column('bucket', sa.String(16), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('user_id', 'note_id'),
        sa.UniqueConstraint('user_id', 'bucket', 'position', name='uq_note_orders_user_bucket_position'),
    )
    op.create_index('idx_note_orders_user_bucket', 'note_orders', ['user_id', 'bucket', 'position'])

    conn = op.get_bind()
    rows = conn.execute(
        sa.text(
            "SELECT id, user_id, pinned, archived FROM notes "
            "ORDER BY user_id, created_at, id"
        )
    ).mappings().all()

    next_positions: dict = {}
    backfill = []
    for row in rows:
        if row['archived']:
            bucket = 'archived'
        elif row['pinned']:
            bucket = 'pinned'
        else:
            bucket = 'unpinned'
        key = (row['user_id'], bucket)
        position = next_positions.get(key, 0)
        next_positions[key] = position + 1
        backfill.append(
            {'user_id': row['user_id'], 'note_id': row['id'], 'bucket': bucket, 'position': position}
        )

    if backfill:
        op.bulk_insert(note_orders, backfill)


def downgrade() -> None:
    op.drop_index('idx_note_orders_user_bucket', table_name='note_orders')
    op.drop_table('note_orders')
