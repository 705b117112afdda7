"""Initial schema - reports, jobs, activities.

Revision ID: 00001
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '00001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # reports (analysis job embedded in the row)
    op.create_table(
        'reports',
        sa.Column('id', sa.String(64), nullable=False),
        sa.Column('company_id', sa.String(64), nullable=True),
        sa.Column('incident_date', sa.String(50), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('reported_peril', sa.String(100), nullable=True),
        sa.Column('photo_urls', sa.Text(), nullable=True),
        sa.Column('status', sa.String(50), nullable=False, server_default='submitted'),
        sa.Column('analysis_status', sa.String(50), nullable=True),
        sa.Column('analysis_job_id', sa.String(64), nullable=True),
        sa.Column('analysis_started_at', sa.DateTime(), nullable=True),
        sa.Column('analysis_completed_at', sa.DateTime(), nullable=True),
        sa.Column('ai_analysis', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.current_timestamp()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_reports_company', 'reports', ['company_id'])
    op.create_index('idx_reports_analysis_status', 'reports', ['analysis_status'])

    # jobs (depends on reports)
    op.create_table(
        'jobs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('report_id', sa.String(64), nullable=True),
        sa.Column('job_type', sa.String(50), nullable=False),
        sa.Column('status', sa.String(50), server_default='pending'),
        sa.Column('priority', sa.Integer(), server_default='0'),
        sa.Column('attempts', sa.Integer(), server_default='0'),
        sa.Column('max_attempts', sa.Integer(), server_default='3'),
        sa.Column('payload', sa.Text(), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('scheduled_for', sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['report_id'], ['reports.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_jobs_pending', 'jobs', ['status', 'scheduled_for', 'priority'])
    op.create_index('idx_jobs_report', 'jobs', ['report_id'])

    # activities (depends on reports)
    op.create_table(
        'activities',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('report_id', sa.String(64), nullable=True),
        sa.Column('user_id', sa.String(64), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['report_id'], ['reports.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_activities_report', 'activities', ['report_id'])
    op.create_index('idx_activities_created', 'activities', ['created_at'])


def downgrade() -> None:
    op.drop_index('idx_activities_created', 'activities')
    op.drop_index('idx_activities_report', 'activities')
    op.drop_table('activities')
    op.drop_index('idx_jobs_report', 'jobs')
    op.drop_index('idx_jobs_pending', 'jobs')
    op.drop_table('jobs')
    op.drop_index('idx_reports_analysis_status', 'reports')
    op.drop_index('idx_reports_company', 'reports')
    op.drop_table('reports')
