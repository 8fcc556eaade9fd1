"""create_webhook_tables

Revision ID: 3f2a9c1d7b10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _entry_columns() -> list:
    return [
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False, comment='接收时间（UTC）'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False, comment='过期时间 = 接收时间 + TTL'),
        sa.Column('method', sa.String(length=16), nullable=False, comment='HTTP 方法'),
        sa.Column('path', sa.String(length=2048), nullable=False, comment='请求路径'),
        sa.Column('channel', sa.String(length=512), nullable=True, comment='路径后缀派生的频道名'),
        sa.Column('query_string', sa.Text(), nullable=True, comment='原始查询串'),
        sa.Column('headers', sa.JSON(), nullable=False, comment='请求头（JSON）'),
        sa.Column('content_type', sa.String(length=255), nullable=True, comment='Content-Type'),
        sa.Column('body', sa.Text(), nullable=True, comment='原始请求体文本'),
        sa.Column('source_ip', sa.String(length=64), nullable=True, comment='来源 IP'),
        sa.Column('content_length', sa.BigInteger(), nullable=False, server_default=sa.text('0'), comment='请求体长度（字节）'),
    ]


def upgrade() -> None:
    # Master table
    op.create_table(
        'webhook_entries',
        sa.Column('id', sa.String(length=32), nullable=False, comment='条目ID'),
        *_entry_columns(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_webhook_entries')),
        comment='主记录表：所有捕获的 webhook，与用户无关',
    )
    op.create_index('ix_webhook_entries_received_at', 'webhook_entries', ['received_at'], unique=False)
    op.create_index('ix_webhook_entries_expires_at', 'webhook_entries', ['expires_at'], unique=False)

    # Per-identity inbox table
    op.create_table(
        'inbox_entries',
        sa.Column('identity', sa.String(length=320), nullable=False, comment='规范化邮箱（身份）'),
        sa.Column('id', sa.String(length=32), nullable=False, comment='条目ID（与主记录相同）'),
        *_entry_columns(),
        sa.PrimaryKeyConstraint('identity', 'id', name=op.f('pk_inbox_entries')),
        comment='用户收件箱：主记录的可变副本，按身份隔离',
    )
    op.create_index('ix_inbox_entries_identity_received', 'inbox_entries', ['identity', 'received_at'], unique=False)
    op.create_index('ix_inbox_entries_expires_at', 'inbox_entries', ['expires_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_inbox_entries_expires_at', table_name='inbox_entries')
    op.drop_index('ix_inbox_entries_identity_received', table_name='inbox_entries')
    op.drop_table('inbox_entries')
    op.drop_index('ix_webhook_entries_expires_at', table_name='webhook_entries')
    op.drop_index('ix_webhook_entries_received_at', table_name='webhook_entries')
    op.drop_table('webhook_entries')
