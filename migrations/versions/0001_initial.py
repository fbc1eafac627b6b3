"""initial tables: users, roster, timetable, settings, substitution ledger, audit

Revision ID: 0001
Revises:
Create Date: 2025-06-02

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table('teacher',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('subject', sa.String(length=255), nullable=True),
        sa.Column('post', sa.String(length=255), nullable=True),
        sa.Column('contact_number', sa.String(length=50), nullable=True),
        sa.Column('photo_url', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_teacher_name', 'teacher', ['name'])

    op.create_table('class_schedule',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('class_name', sa.String(length=100), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table('period_entry',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('class_id', sa.Integer(), sa.ForeignKey('class_schedule.id', ondelete='CASCADE'), nullable=False),
        sa.Column('day', sa.String(length=16), nullable=False),
        sa.Column('period', sa.String(length=16), nullable=False),
        sa.Column('subject', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('teacher_id', sa.Integer(), sa.ForeignKey('teacher.id', ondelete='SET NULL'), nullable=True),
        sa.Column('time_label', sa.String(length=32), nullable=False, server_default=''),
        sa.UniqueConstraint('class_id', 'day', 'period', name='uq_period_entry_cell'),
    )
    op.create_index('ix_period_entry_teacher_day', 'period_entry', ['teacher_id', 'day'])

    op.create_table('school_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('periods', sa.JSON(), nullable=False),
        sa.Column('time_slots', sa.JSON(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table('substitution_record',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('absent_teacher_id', sa.Integer(), sa.ForeignKey('teacher.id', ondelete='SET NULL'), nullable=True),
        sa.Column('absent_teacher_name', sa.String(length=255), nullable=False),
        sa.Column('period', sa.String(length=16), nullable=False),
        sa.Column('original_class', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('original_subject', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('substitute_teacher_id', sa.Integer(), sa.ForeignKey('teacher.id', ondelete='SET NULL'), nullable=True),
        sa.Column('substitute_teacher_name', sa.String(length=255), nullable=False),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('created_by_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.UniqueConstraint('date', 'absent_teacher_id', 'period', name='uq_substitution_date_absent_period'),
    )
    op.create_index('ix_substitution_record_date', 'substitution_record', ['date'])
    op.create_index('ix_substitution_substitute_date', 'substitution_record', ['substitute_teacher_id', 'date'])

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('entity', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

def downgrade():
    op.drop_table('audit_logs')
    op.drop_index('ix_substitution_substitute_date', table_name='substitution_record')
    op.drop_index('ix_substitution_record_date', table_name='substitution_record')
    op.drop_table('substitution_record')
    op.drop_table('school_settings')
    op.drop_index('ix_period_entry_teacher_day', table_name='period_entry')
    op.drop_table('period_entry')
    op.drop_table('class_schedule')
    op.drop_index('ix_teacher_name', table_name='teacher')
    op.drop_table('teacher')
    op.drop_index('ix_users_role', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
