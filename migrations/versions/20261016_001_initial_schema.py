"""Initial schema: accounts, profiles, swipes, matches, scheduling, safety

Revision ID: 20261016_001
Revises:
Create Date: 2026-10-16 10:00:00

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '20261016_001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Create accounts table
    op.create_table('accounts',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('phone', sa.String(length=20), nullable=True),
    sa.Column('email', sa.String(length=254), nullable=True),
    sa.Column('password_hash', sa.String(length=128), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('phone'),
    sa.UniqueConstraint('email')
    )

    # Create profiles table
    op.create_table('profiles',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('name', sa.String(length=64), nullable=False),
    sa.Column('birthday', sa.Date(), nullable=False),
    sa.Column('gender', sa.String(length=16), nullable=False),
    sa.Column('sexuality', sa.String(length=16), nullable=False),
    sa.Column('show_me', sa.String(length=16), nullable=False),
    sa.Column('prompts', sa.JSON(), nullable=False),
    sa.Column('photos', sa.JSON(), nullable=False),
    sa.Column('bio', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    sa.CheckConstraint("gender IN ('man','woman','non_binary','other')", name='chk_profile_gender'),
    sa.CheckConstraint(
        "sexuality IN ('straight','gay','lesbian','bisexual','pansexual','queer','asexual','other')",
        name='chk_profile_sexuality',
    ),
    sa.CheckConstraint("show_me IN ('men','women','everyone')", name='chk_profile_show_me'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_profiles_created_at'), 'profiles', ['created_at'], unique=False)

    # Create swipes table (append-only)
    op.create_table('swipes',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('from_id', sa.String(length=36), nullable=False),
    sa.Column('to_id', sa.String(length=36), nullable=False),
    sa.Column('action', sa.String(length=8), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.CheckConstraint("action IN ('like','pass')", name='chk_swipe_action'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_swipes_pair', 'swipes', ['from_id', 'to_id', 'action'], unique=False)

    # Create matches table
    op.create_table('matches',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('user_a_id', sa.String(length=36), nullable=False),
    sa.Column('user_b_id', sa.String(length=36), nullable=False),
    sa.Column('state', sa.String(length=16), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.CheckConstraint('user_a_id <> user_b_id', name='chk_match_no_self'),
    sa.CheckConstraint("state IN ('active','archived','blocked')", name='chk_match_state'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_matches_user_a_id'), 'matches', ['user_a_id'], unique=False)
    op.create_index(op.f('ix_matches_user_b_id'), 'matches', ['user_b_id'], unique=False)
    # One match per unordered pair, whatever its state
    op.create_index('uq_match_pair', 'matches', ['user_a_id', 'user_b_id'], unique=True)

    # Create call_threads table
    op.create_table('call_threads',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('match_id', sa.String(length=36), nullable=False),
    sa.Column('scheduling_state', sa.String(length=16), nullable=False),
    sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=False),
    sa.CheckConstraint("scheduling_state IN ('pending','proposed','confirmed')", name='chk_thread_state'),
    sa.ForeignKeyConstraint(['match_id'], ['matches.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('match_id')
    )

    # Create call_proposals table
    op.create_table('call_proposals',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('thread_id', sa.String(length=36), nullable=False),
    sa.Column('proposed_by', sa.String(length=36), nullable=False),
    sa.Column('call_type', sa.String(length=8), nullable=False),
    sa.Column('slots', sa.JSON(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.CheckConstraint("call_type IN ('audio','video')", name='chk_proposal_call_type'),
    sa.ForeignKeyConstraint(['thread_id'], ['call_threads.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_call_proposals_thread_id'), 'call_proposals', ['thread_id'], unique=False)

    # Create call_events table
    op.create_table('call_events',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('thread_id', sa.String(length=36), nullable=False),
    sa.Column('scheduled_start', sa.DateTime(timezone=True), nullable=False),
    sa.Column('duration_seconds', sa.Integer(), nullable=False),
    sa.Column('call_type', sa.String(length=8), nullable=False),
    sa.Column('state', sa.String(length=16), nullable=False),
    sa.Column('provider_join_url', sa.String(length=255), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.CheckConstraint("call_type IN ('audio','video')", name='chk_event_call_type'),
    sa.CheckConstraint("state IN ('scheduled','live','completed','missed','canceled')", name='chk_event_state'),
    sa.ForeignKeyConstraint(['thread_id'], ['call_threads.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_call_events_thread_id'), 'call_events', ['thread_id'], unique=False)

    # At most one upcoming (scheduled or live) call per thread
    op.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS uq_call_events_thread_upcoming
        ON call_events(thread_id) WHERE state IN ('scheduled','live')
    """
    )

    # Missed-call sweep
    op.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_call_events_scheduled
        ON call_events(scheduled_start) WHERE state = 'scheduled'
    """
    )

    # Create feedback table
    op.create_table('feedback',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('call_event_id', sa.String(length=36), nullable=False),
    sa.Column('user_id', sa.String(length=36), nullable=False),
    sa.Column('rating', sa.String(length=16), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.CheckConstraint("rating IN ('interested','not_interested')", name='chk_feedback_rating'),
    sa.ForeignKeyConstraint(['call_event_id'], ['call_events.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_feedback_call_event_id'), 'feedback', ['call_event_id'], unique=False)
    op.create_index('uq_feedback_once_per_call', 'feedback', ['call_event_id', 'user_id'], unique=True)

    # Create blocks table
    op.create_table('blocks',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('blocker_id', sa.String(length=36), nullable=False),
    sa.Column('blocked_id', sa.String(length=36), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.CheckConstraint('blocker_id <> blocked_id', name='chk_block_no_self'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_blocks_blocker_id'), 'blocks', ['blocker_id'], unique=False)
    op.create_index(op.f('ix_blocks_blocked_id'), 'blocks', ['blocked_id'], unique=False)
    op.create_index('uq_blocks_pair', 'blocks', ['blocker_id', 'blocked_id'], unique=True)

    # Create reports table
    op.create_table('reports',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('reporter_id', sa.String(length=36), nullable=False),
    sa.Column('reported_id', sa.String(length=36), nullable=False),
    sa.Column('category', sa.String(length=16), nullable=False),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.CheckConstraint(
        "category IN ('inappropriate','fake','harassment','spam','other')", name='chk_report_category'
    ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_reports_reporter_id'), 'reports', ['reporter_id'], unique=False)
    op.create_index(op.f('ix_reports_reported_id'), 'reports', ['reported_id'], unique=False)


def downgrade() -> None:
    op.drop_table('reports')
    op.drop_table('blocks')
    op.drop_table('feedback')
    op.execute("DROP INDEX IF EXISTS idx_call_events_scheduled")
    op.execute("DROP INDEX IF EXISTS uq_call_events_thread_upcoming")
    op.drop_table('call_events')
    op.drop_table('call_proposals')
    op.drop_table('call_threads')
    op.drop_table('matches')
    op.drop_table('swipes')
    op.drop_table('profiles')
    op.drop_table('accounts')
