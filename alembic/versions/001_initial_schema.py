"""initial audit schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    # Create audit_cache table
    op.create_table(
        'audit_cache',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('domain', sa.String(253), nullable=False),
        sa.Column('mode', sa.String(16), nullable=False),
        sa.Column('results', sa.JSON(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('domain', 'mode', name='uq_audit_cache_domain_mode'),
    )
    op.create_index(op.f('ix_audit_cache_id'), 'audit_cache', ['id'], unique=False)
    op.create_index(op.f('ix_audit_cache_domain'), 'audit_cache', ['domain'], unique=False)
    op.create_index(op.f('ix_audit_cache_expires_at'), 'audit_cache', ['expires_at'], unique=False)

    # Create audits table
    op.create_table(
        'audits',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('domain', sa.String(253), nullable=False),
        sa.Column('email', sa.String(254), nullable=True),
        sa.Column('mode', sa.String(16), nullable=False),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('request_id', sa.String(64), nullable=True),
        sa.Column('lighthouse_results', sa.JSON(), nullable=True),
        sa.Column('seo_basic_results', sa.JSON(), nullable=True),
        sa.Column('security_results', sa.JSON(), nullable=True),
        sa.Column('rgpd_results', sa.JSON(), nullable=True),
        sa.Column('cookies_results', sa.JSON(), nullable=True),
        sa.Column('seo_advanced_results', sa.JSON(), nullable=True),
        sa.Column('execution_time', sa.Integer(), nullable=False),
        sa.Column('pdf_generated', sa.Boolean(), nullable=False),
        sa.Column('email_sent', sa.Boolean(), nullable=False),
        sa.Column('email_message_id', sa.String(255), nullable=True),
        sa.Column('status', sa.Enum('completed', 'failed', name='audit_status'), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_audits_id'), 'audits', ['id'], unique=False)
    op.create_index(op.f('ix_audits_domain'), 'audits', ['domain'], unique=False)
    op.create_index(op.f('ix_audits_email'), 'audits', ['email'], unique=False)

    # Create audit_statistics table
    op.create_table(
        'audit_statistics',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('total_audits', sa.Integer(), nullable=False),
        sa.Column('fast_audits', sa.Integer(), nullable=False),
        sa.Column('complete_audits', sa.Integer(), nullable=False),
        sa.Column('emails_sent', sa.Integer(), nullable=False),
        sa.Column('emails_failed', sa.Integer(), nullable=False),
        sa.Column('avg_execution_time', sa.Float(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_audit_statistics_id'), 'audit_statistics', ['id'], unique=False)
    op.create_index(op.f('ix_audit_statistics_date'), 'audit_statistics', ['date'], unique=True)

    # Create popular_domains table
    op.create_table(
        'popular_domains',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('domain', sa.String(253), nullable=False),
        sa.Column('audit_count', sa.Integer(), nullable=False),
        sa.Column('last_audit_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('avg_performance', sa.Float(), nullable=False),
        sa.Column('avg_seo', sa.Float(), nullable=False),
        sa.Column('avg_accessibility', sa.Float(), nullable=False),
        sa.Column('avg_best_practices', sa.Float(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_popular_domains_id'), 'popular_domains', ['id'], unique=False)
    op.create_index(op.f('ix_popular_domains_domain'), 'popular_domains', ['domain'], unique=True)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('popular_domains')
    op.drop_table('audit_statistics')
    op.drop_table('audits')
    op.drop_table('audit_cache')
    sa.Enum(name='audit_status').drop(op.get_bind(), checkfirst=True)
