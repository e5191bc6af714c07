"""Create project store tables

Revision ID: 0001_create_project_store_tables
Revises:
Create Date: 2025-10-01

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from researchflow.config.settings import settings


# revision identifiers, used by Alembic.
revision: str = '0001_create_project_store_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PREFIX = settings.TABLE_PREFIX


def _t(name: str) -> str:
    return settings.table_name(name)


def _scope_indexes(table: str) -> None:
    op.create_index(f'ix_{table}_project_id', table, ['project_id'])
    op.create_index(f'ix_{table}_user_id', table, ['user_id'])


def upgrade() -> None:
    """Create activity, learner, normalized project and legacy tables"""

    op.create_table(
        _t('activities'),
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('instructions', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_at', sa.Integer(), nullable=False),
    )

    op.create_table(
        _t('users'),
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=100), nullable=False, server_default=''),
    )

    # 元数据：每个作用域一行
    op.create_table(
        _t('metadata'),
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('current_tab', sa.String(length=20), nullable=False, server_default='plan'),
        sa.Column('instructor_instructions', sa.Text(), nullable=False, server_default=''),
        sa.Column('goal', sa.Text(), nullable=False, server_default=''),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='draft'),
        sa.Column('plan_outline', sa.Text(), nullable=True),
        sa.Column('created_at', sa.Integer(), nullable=False),
        sa.Column('modified_at', sa.Integer(), nullable=False),
        sa.UniqueConstraint('project_id', 'user_id', name=f'uq_{PREFIX}_metadata_scope'),
    )
    _scope_indexes(_t('metadata'))

    op.create_table(
        _t('ideas'),
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False, server_default=''),
        sa.Column('location', sa.String(length=20), nullable=False, server_default='brainstorm'),
        sa.Column('section_id', sa.String(length=100), nullable=True),
        sa.Column('ai_generated', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.Integer(), nullable=False),
        sa.Column('modified_at', sa.Integer(), nullable=False),
    )
    _scope_indexes(_t('ideas'))
    op.create_index(
        f'ix_{PREFIX}_ideas_bucket',
        _t('ideas'),
        ['project_id', 'user_id', 'location', 'section_id'],
    )

    op.create_table(
        _t('content'),
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('phase', sa.String(length=20), nullable=False),
        sa.Column('content', sa.Text(), nullable=False, server_default=''),
        sa.Column('word_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.Integer(), nullable=False),
        sa.Column('modified_at', sa.Integer(), nullable=False),
        sa.UniqueConstraint('project_id', 'user_id', 'phase', name=f'uq_{PREFIX}_content_phase'),
    )
    _scope_indexes(_t('content'))

    op.create_table(
        _t('versions'),
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('phase', sa.String(length=20), nullable=False),
        sa.Column('version_number', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False, server_default=''),
        sa.Column('word_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('change_summary', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.Integer(), nullable=False),
        sa.Column('modified_by', sa.Integer(), nullable=False),
        sa.UniqueConstraint(
            'project_id', 'user_id', 'phase', 'version_number',
            name=f'uq_{PREFIX}_versions_number',
        ),
    )
    _scope_indexes(_t('versions'))

    op.create_table(
        _t('chat_sessions'),
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('session_id', sa.String(length=100), nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False, server_default='New Chat'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.Integer(), nullable=False),
        sa.Column('modified_at', sa.Integer(), nullable=False),
    )
    op.create_index(
        f'ix_{_t("chat_sessions")}_session_id', _t('chat_sessions'), ['session_id'], unique=True
    )
    _scope_indexes(_t('chat_sessions'))

    # 聊天消息：chat_session_id 可为空（会话功能之前的历史消息）
    op.create_table(
        _t('chat'),
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('chat_session_id', sa.String(length=100), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('content', sa.Text(), nullable=False, server_default=''),
        sa.Column('timestamp', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.Integer(), nullable=False),
    )
    _scope_indexes(_t('chat'))
    op.create_index(f'ix_{_t("chat")}_chat_session_id', _t('chat'), ['chat_session_id'])

    # 旧版单 JSON 记录
    op.create_table(
        _t('work'),
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False, server_default=''),
        sa.Column('is_migrated', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('timecreated', sa.Integer(), nullable=False),
        sa.Column('timemodified', sa.Integer(), nullable=False),
        sa.UniqueConstraint('project_id', 'user_id', name=f'uq_{PREFIX}_work_scope'),
    )
    _scope_indexes(_t('work'))


def downgrade() -> None:
    """Drop all project store tables (child tables first)"""
    for name in (
        'chat',
        'chat_sessions',
        'versions',
        'content',
        'ideas',
        'metadata',
        'work',
        'users',
        'activities',
    ):
        op.drop_table(_t(name))
