"""create room table

Revision ID: 5c2d7e9a1b40
Revises:
Create Date: 2026-10-19 10:12:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2d7e9a1b40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)

    # Databases created with `flask db-reset` already have the table
    if 'room' in set(insp.get_table_names()):
        return

    op.create_table(
        'room',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('host_id', sa.String(length=64), nullable=False),
        sa.Column('players', sa.Text(), nullable=False),
        sa.Column('settings', sa.Text(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('max_players', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('turn_order', sa.Text(), nullable=True),
        sa.Column('total_rounds', sa.Integer(), nullable=True),
        sa.Column('current_round', sa.Integer(), nullable=True),
        sa.Column('current_turn_index', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.Column('last_activity', sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    # The stale-room sweep filters on last activity
    op.create_index('ix_room_last_activity', 'room', ['last_activity'])


def downgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)

    if 'room' not in set(insp.get_table_names()):
        return
    op.drop_index('ix_room_last_activity', table_name='room')
    op.drop_table('room')
