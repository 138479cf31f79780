# alembic/versions/20261018_01_baseline_schema.py
"""Baseline schema: news events, news alerts and schedules

Revision ID: 20261018_01_baseline
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20261018_01_baseline'
down_revision = None
branch_labels = None
depends_on = None

IMPACTS = ('HIGH', 'MEDIUM', 'LOW', 'HOLIDAY')
CURRENCIES = ('USD', 'EUR', 'GBP', 'JPY', 'CHF', 'AUD', 'CAD', 'CNY', 'NZD')


def upgrade() -> None:
    op.create_table(
        'news_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('scheduled_at', sa.DateTime(timezone=False), nullable=False),
        sa.Column('impact', sa.Enum(*IMPACTS, name='impactenum'), nullable=False),
        sa.Column('currency', sa.Enum(*CURRENCIES, name='currencyenum'), nullable=False),
        sa.Column('forecast', sa.String(length=64), nullable=True),
        sa.Column('previous', sa.String(length=64), nullable=True),
        sa.Column('actual', sa.String(length=64), nullable=True),
        sa.Column('source', sa.String(length=64), nullable=False, server_default='ForexFactory'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('title', 'scheduled_at', 'impact', 'currency', name='uq_news_events_natural_key'),
    )
    op.create_index('ix_news_events_scheduled_at', 'news_events', ['scheduled_at'])

    op.create_table(
        'news_alerts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('server_id', sa.String(length=32), nullable=False),
        sa.Column('channel_id', sa.String(length=32), nullable=False),
        sa.Column('role_id', sa.String(length=32), nullable=True),
        sa.Column('impact', sa.JSON(), nullable=False),
        sa.Column('currency', sa.JSON(), nullable=False),
        sa.Column('alert_type', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('server_id', 'channel_id', name='uq_news_alerts_destination'),
    )
    op.create_index('ix_news_alerts_server_id', 'news_alerts', ['server_id'])

    op.create_table(
        'schedules',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('server_id', sa.String(length=32), nullable=False),
        sa.Column('channel_id', sa.String(length=32), nullable=False),
        sa.Column('role_id', sa.String(length=32), nullable=True),
        sa.Column('hour', sa.Integer(), nullable=False),
        sa.Column('minute', sa.Integer(), nullable=False),
        sa.Column('time_zone', sa.String(length=64), nullable=False, server_default='UTC'),
        sa.Column('frequency', sa.String(length=16), nullable=False, server_default='DAILY'),
        sa.Column('news_scope', sa.String(length=16), nullable=False, server_default='DAILY'),
        sa.Column('market', sa.String(length=16), nullable=False, server_default='FOREX'),
        sa.Column('time_display', sa.String(length=16), nullable=False, server_default='FIXED'),
        sa.Column('impact', sa.JSON(), nullable=False),
        sa.Column('currency', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('hour BETWEEN 0 AND 23', name='ck_schedules_hour'),
        sa.CheckConstraint('minute BETWEEN 0 AND 59', name='ck_schedules_minute'),
    )
    op.create_index('ix_schedules_server_id', 'schedules', ['server_id'])


def downgrade() -> None:
    op.drop_index('ix_schedules_server_id', table_name='schedules')
    op.drop_table('schedules')
    op.drop_index('ix_news_alerts_server_id', table_name='news_alerts')
    op.drop_table('news_alerts')
    op.drop_index('ix_news_events_scheduled_at', table_name='news_events')
    op.drop_table('news_events')
    sa.Enum(name='currencyenum').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='impactenum').drop(op.get_bind(), checkfirst=True)
