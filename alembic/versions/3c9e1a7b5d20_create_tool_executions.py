"""create_tool_executions

Revision ID: 3c9e1a7b5d20
Revises:
Create Date: 2026-10-19 10:12:31.402118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3c9e1a7b5d20'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('tool_executions',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('tool_name', sa.String(length=128), nullable=False),
    sa.Column('user_id', sa.String(length=64), nullable=True),
    sa.Column('team_id', sa.String(length=64), nullable=True),
    sa.Column('success', sa.Boolean(), nullable=False),
    sa.Column('error_code', sa.String(length=64), nullable=True),
    sa.Column('error_message', sa.Text(), nullable=True),
    sa.Column('error_type', sa.String(length=128), nullable=True),
    sa.Column('duration_ms', sa.Float(), nullable=False),
    sa.Column('memory_bytes', sa.Integer(), nullable=False),
    sa.Column('retries', sa.Integer(), nullable=False),
    sa.Column('trace_id', sa.String(length=32), nullable=True),
    sa.Column('arguments', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    schema='toolhub'
    )
    op.create_index(op.f('ix_toolhub_tool_executions_tool_name'), 'tool_executions', ['tool_name'], unique=False, schema='toolhub')
    op.create_index(op.f('ix_toolhub_tool_executions_trace_id'), 'tool_executions', ['trace_id'], unique=False, schema='toolhub')
    op.create_index('ix_tool_executions_user_created', 'tool_executions', ['user_id', 'created_at'], unique=False, schema='toolhub')
    op.create_index('ix_tool_executions_team_created', 'tool_executions', ['team_id', 'created_at'], unique=False, schema='toolhub')


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_tool_executions_team_created', table_name='tool_executions', schema='toolhub')
    op.drop_index('ix_tool_executions_user_created', table_name='tool_executions', schema='toolhub')
    op.drop_index(op.f('ix_toolhub_tool_executions_trace_id'), table_name='tool_executions', schema='toolhub')
    op.drop_index(op.f('ix_toolhub_tool_executions_tool_name'), table_name='tool_executions', schema='toolhub')
    op.drop_table('tool_executions', schema='toolhub')
