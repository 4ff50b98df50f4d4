"""Initial migration - create all tables

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Creates all database tables for the Times Tables Practice Platform:
- teachers: Staff accounts (teacher / admin)
- classes: Classes and their quiz settings
- teacher_classes: Which teacher may see which class
- teacher_invites: One-time set-password tokens
- students: Pupils with hashed PIN / temporary password
- attempts: One row per quiz
- question_records: One row per question within a quiz

Also creates indexes for common query patterns. Identifiers are 36-char
UUID strings so the same revision runs on PostgreSQL and SQLite.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Teachers Table ────────────────────────────────────────
    op.create_table(
        'teachers',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('full_name', sa.Text(), nullable=False, server_default=''),
        sa.Column('role', sa.String(16), nullable=False, server_default='teacher'),
        sa.Column('password_hash', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Classes Table ─────────────────────────────────────────
    op.create_table(
        'classes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('class_label', sa.String(16), nullable=False, unique=True),
        sa.Column('year_group', sa.Integer(), nullable=True),
        sa.Column('test_start_date', sa.Date(), nullable=True),
        sa.Column('min_table', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('max_table', sa.Integer(), nullable=False, server_default='12'),
        sa.Column('question_count', sa.Integer(), nullable=False, server_default='25'),
        sa.Column('seconds_per_question', sa.Integer(), nullable=False, server_default='6'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Teacher ↔ Class Links ─────────────────────────────────
    op.create_table(
        'teacher_classes',
        sa.Column('teacher_id', sa.String(36),
                  sa.ForeignKey('teachers.id'), primary_key=True),
        sa.Column('class_id', sa.String(36),
                  sa.ForeignKey('classes.id'), primary_key=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Teacher Invites ───────────────────────────────────────
    op.create_table(
        'teacher_invites',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('teacher_id', sa.String(36),
                  sa.ForeignKey('teachers.id'), nullable=False),
        sa.Column('token_hash', sa.Text(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Students Table ────────────────────────────────────────
    op.create_table(
        'students',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('first_name', sa.Text(), nullable=False),
        sa.Column('last_name', sa.Text(), nullable=False, server_default=''),
        sa.Column('username', sa.String(32), nullable=False),
        sa.Column('pin_hash', sa.Text(), nullable=True),
        sa.Column('password_hash', sa.Text(), nullable=True),
        sa.Column('class_id', sa.String(36),
                  sa.ForeignKey('classes.id'), nullable=True),
        sa.Column('class_label', sa.String(16), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Attempts Table ────────────────────────────────────────
    op.create_table(
        'attempts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('student_id', sa.String(36),
                  sa.ForeignKey('students.id'), nullable=False),
        sa.Column('class_id', sa.String(36),
                  sa.ForeignKey('classes.id'), nullable=True),
        sa.Column('class_label', sa.String(16), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('max_score', sa.Integer(), nullable=True),
        sa.Column('percent', sa.Float(), nullable=True),
        sa.Column('avg_response_time_ms', sa.Integer(), nullable=True),
        sa.Column('seconds_per_question', sa.Integer(), nullable=True),
        sa.Column('completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    # ── Question Records Table ────────────────────────────────
    op.create_table(
        'question_records',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('attempt_id', sa.String(36),
                  sa.ForeignKey('attempts.id'), nullable=False),
        sa.Column('student_id', sa.String(36),
                  sa.ForeignKey('students.id'), nullable=False),
        sa.Column('q_index', sa.Integer(), nullable=False),
        sa.Column('a', sa.Integer(), nullable=False),
        sa.Column('b', sa.Integer(), nullable=False),
        sa.Column('table_num', sa.Integer(), nullable=False),
        sa.Column('correct_answer', sa.Integer(), nullable=False),
        sa.Column('given_answer', sa.Integer(), nullable=True),
        sa.Column('is_correct', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('timed_out', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('response_time_ms', sa.Integer(), nullable=True),
        sa.Column('served_at', sa.DateTime(), nullable=True),
        sa.Column('answered_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    # ── Indexes ───────────────────────────────────────────────
    op.create_index('uq_teachers_email', 'teachers', ['email'], unique=True)
    op.create_index('ix_teacher_invites_token_hash', 'teacher_invites', ['token_hash'])
    op.create_index('uq_students_username', 'students', ['username'], unique=True)
    op.create_index('ix_students_class_id', 'students', ['class_id'])
    op.create_index('ix_attempts_student_id', 'attempts', ['student_id'])
    op.create_index('ix_attempts_class_id', 'attempts', ['class_id'])
    op.create_index('ix_attempts_created_at', 'attempts', ['created_at'])
    op.create_index('ix_question_records_attempt_id', 'question_records', ['attempt_id'])
    op.create_index('ix_question_records_student_created', 'question_records',
                    ['student_id', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_question_records_student_created', table_name='question_records')
    op.drop_index('ix_question_records_attempt_id', table_name='question_records')
    op.drop_index('ix_attempts_created_at', table_name='attempts')
    op.drop_index('ix_attempts_class_id', table_name='attempts')
    op.drop_index('ix_attempts_student_id', table_name='attempts')
    op.drop_index('ix_students_class_id', table_name='students')
    op.drop_index('uq_students_username', table_name='students')
    op.drop_index('ix_teacher_invites_token_hash', table_name='teacher_invites')
    op.drop_index('uq_teachers_email', table_name='teachers')
    op.drop_table('question_records')
    op.drop_table('attempts')
    op.drop_table('students')
    op.drop_table('teacher_invites')
    op.drop_table('teacher_classes')
    op.drop_table('classes')
    op.drop_table('teachers')
