"""create_video_progress_table

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19 10:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1b2c3d4e5f6'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create video_progress table with the merged watched intervals."""
    op.create_table(
        'video_progress',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(100), nullable=False),
        sa.Column('video_id', sa.String(100), nullable=False),
        sa.Column('intervals', sa.JSON(), nullable=False),
        sa.Column('total_unique_seconds', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_position', sa.Float(), nullable=False, server_default='0.0'),
        sa.Column('duration', sa.Float(), nullable=False, server_default='0.0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'video_id', name='uq_video_progress_user_video')
    )
    op.create_index('ix_video_progress_id', 'video_progress', ['id'])
    op.create_index('ix_video_progress_user_id', 'video_progress', ['user_id'])
    op.create_index('ix_video_progress_video_id', 'video_progress', ['video_id'])


def downgrade() -> None:
    """Drop video_progress table."""
    op.drop_index('ix_video_progress_video_id', table_name='video_progress')
    op.drop_index('ix_video_progress_user_id', table_name='video_progress')
    op.drop_index('ix_video_progress_id', table_name='video_progress')
    op.drop_table('video_progress')
