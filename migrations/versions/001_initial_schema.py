"""Initial schema - accounts, courses, sharing, promo codes and exam snipes

Revision ID: 001_initial_schema
Revises:
Create Date: 2025-01-15 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

user_role_enum = sa.Enum('user', 'admin', name='user_role_enum')
subscription_level_enum = sa.Enum('Free', 'Paid', 'Tester', name='subscription_level_enum')


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now())


def _user_fk(nullable=False):
    return sa.Column(
        'user_id', sa.Integer(), sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=nullable, index=True
    )


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('username', sa.String(50), nullable=False, unique=True, index=True),
        sa.Column('email', sa.String(255), nullable=True, unique=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', user_role_enum, nullable=False, server_default='user'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('subscription_level', subscription_level_enum, nullable=False, server_default='Free'),
        sa.Column('billing_period', sa.String(20), nullable=True),
        sa.Column('payment_status', sa.String(50), nullable=True),
        sa.Column('promo_code_used', sa.String(100), nullable=True),
        sa.Column('subscription_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('subscription_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('preferences', JSON, nullable=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )

    op.create_table(
        'user_session',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column('session_token', sa.String(512), nullable=False, unique=True, index=True),
        _created_at(),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'subject',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column('slug', sa.String(128), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        _created_at(),
        sa.UniqueConstraint('user_id', 'slug', name='uq_subject_user_slug'),
    )

    op.create_table(
        'subject_data',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column('slug', sa.String(128), nullable=False),
        sa.Column('data', JSON, nullable=False),
        sa.Column('shared_by_username', sa.String(50), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'slug', name='uq_subject_data_user_slug'),
    )

    op.create_table(
        'shared_course',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('share_id', sa.String(64), nullable=False, unique=True, index=True),
        _user_fk(),
        sa.Column('course_slug', sa.String(128), nullable=False),
        sa.Column('course_name', sa.String(255), nullable=False),
        sa.Column('course_data', JSON, nullable=False),
        _created_at(),
    )

    op.create_table(
        'promo_code',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('code', sa.String(100), nullable=False, unique=True, index=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('subscription_level', subscription_level_enum, nullable=False, server_default='Tester'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('validity_days', sa.Integer(), nullable=True),
        sa.Column('max_uses', sa.Integer(), nullable=True),
        sa.Column('current_uses', sa.Integer(), nullable=False, server_default='0'),
        _created_at(),
    )

    op.create_table(
        'promo_code_redemption',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'promo_code_id', sa.Integer(), sa.ForeignKey('promo_code.id', ondelete='CASCADE'),
            nullable=False, index=True
        ),
        _user_fk(),
        sa.Column('redeemed_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('promo_code_id', 'user_id', name='uq_redemption_code_user'),
    )

    op.create_table(
        'usage_stats',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('courses_created', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lessons_generated', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('api_calls', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_reset_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'exam_snipe_history',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column('slug', sa.String(128), nullable=False),
        sa.Column('course_name', sa.String(255), nullable=False),
        sa.Column('subject_slug', sa.String(128), nullable=True),
        sa.Column('file_names', JSON, nullable=False),
        sa.Column('results', JSON, nullable=False),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'slug', name='uq_exam_snipe_user_slug'),
    )
    op.create_index('ix_exam_snipe_user_subject', 'exam_snipe_history', ['user_id', 'subject_slug'])

    op.create_table(
        'feedback',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _user_fk(nullable=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('page', sa.String(255), nullable=False, server_default='unknown'),
        sa.Column('done', sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
    )


def downgrade():
    op.drop_table('feedback')
    op.drop_index('ix_exam_snipe_user_subject', table_name='exam_snipe_history')
    op.drop_table('exam_snipe_history')
    op.drop_table('usage_stats')
    op.drop_table('promo_code_redemption')
    op.drop_table('promo_code')
    op.drop_table('shared_course')
    op.drop_table('subject_data')
    op.drop_table('subject')
    op.drop_table('user_session')
    op.drop_table('user')

    subscription_level_enum.drop(op.get_bind(), checkfirst=True)
    user_role_enum.drop(op.get_bind(), checkfirst=True)
