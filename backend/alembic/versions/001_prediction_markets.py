"""Prediction market tables

Revision ID: 001_prediction_markets
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_prediction_markets'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    group_role_enum = sa.Enum('ADMIN', 'JUDGE', 'MEMBER', name='group_role')
    market_type_enum = sa.Enum('STANDARD', 'NO_LOSS', 'WITH_YIELD', name='market_type')
    market_status_enum = sa.Enum('PENDING', 'ACTIVE', 'RESOLVED', 'CANCELLED', name='market_status')
    market_outcome_enum = sa.Enum('YES', 'NO', 'INVALID', name='market_outcome')
    vote_prediction_enum = sa.Enum('YES', 'NO', name='vote_prediction')

    op.create_table(
        'users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('wallet_address', sa.String(), nullable=False),
        sa.Column('display_name', sa.String(), nullable=True),
        sa.Column('total_predictions', sa.Integer(), server_default='0', nullable=False),
        sa.Column('correct_predictions', sa.Integer(), server_default='0', nullable=False),
        sa.Column('total_earnings', sa.Float(), server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_wallet_address', 'users', ['wallet_address'], unique=True)

    op.create_table(
        'groups',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'group_members',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('group_id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('role', group_role_enum, nullable=False),
        sa.Column('joined_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('group_id', 'user_id', name='uq_group_member'),
    )
    op.create_index('ix_group_members_user_id', 'group_members', ['user_id'], unique=False)

    op.create_table(
        'prediction_markets',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('on_chain_id', sa.String(), nullable=True),
        sa.Column('group_id', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('image_url', sa.String(), nullable=True),
        sa.Column('market_type', market_type_enum, nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('min_stake', sa.Float(), nullable=False),
        sa.Column('max_stake', sa.Float(), nullable=True),
        sa.Column('status', market_status_enum, nullable=False),
        sa.Column('outcome', market_outcome_enum, nullable=True),
        sa.Column('yes_pool', sa.Float(), server_default='0', nullable=False),
        sa.Column('no_pool', sa.Float(), server_default='0', nullable=False),
        sa.Column('total_volume', sa.Float(), server_default='0', nullable=False),
        sa.Column('yes_percentage', sa.Float(), server_default='50', nullable=False),
        sa.Column('no_percentage', sa.Float(), server_default='50', nullable=False),
        sa.Column('participant_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('resolved_by_id', sa.String(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('resolution_note', sa.Text(), nullable=True),
        sa.Column('created_by_id', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['resolved_by_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('on_chain_id'),
        sa.CheckConstraint('min_stake > 0', name='ck_market_min_stake_positive'),
        sa.CheckConstraint('max_stake IS NULL OR max_stake > 0', name='ck_market_max_stake_positive'),
    )
    op.create_index('ix_prediction_markets_group_id', 'prediction_markets', ['group_id'], unique=False)
    op.create_index('ix_prediction_markets_status', 'prediction_markets', ['status'], unique=False)

    op.create_table(
        'votes',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('market_id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('prediction', vote_prediction_enum, nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('reward_amount', sa.Float(), nullable=True),
        sa.Column('has_claimed_reward', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['market_id'], ['prediction_markets.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('market_id', 'user_id', name='uq_vote_market_user'),
        sa.CheckConstraint('amount > 0', name='ck_vote_amount_positive'),
    )
    op.create_index('ix_votes_user_id', 'votes', ['user_id'], unique=False)

    op.create_table(
        'initialization_locks',
        sa.Column('market_id', sa.String(), nullable=False),
        sa.Column('locked_by', sa.String(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('market_id'),
    )
    op.create_index('ix_initialization_locks_expires_at', 'initialization_locks', ['expires_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_initialization_locks_expires_at', table_name='initialization_locks')
    op.drop_table('initialization_locks')
    op.drop_index('ix_votes_user_id', table_name='votes')
    op.drop_table('votes')
    op.drop_index('ix_prediction_markets_status', table_name='prediction_markets')
    op.drop_index('ix_prediction_markets_group_id', table_name='prediction_markets')
    op.drop_table('prediction_markets')
    op.drop_index('ix_group_members_user_id', table_name='group_members')
    op.drop_table('group_members')
    op.drop_table('groups')
    op.drop_index('ix_users_wallet_address', table_name='users')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_name in ('vote_prediction', 'market_outcome', 'market_status', 'market_type', 'group_role'):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
