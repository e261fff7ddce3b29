"""Initial database schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 06:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create organizations table
    op.create_table('organizations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    # Create lookup tables used by people breakdowns
    op.create_table('teams',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_teams_organization_id', 'teams', ['organization_id'])

    op.create_table('job_roles',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=128), nullable=False),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_job_roles_organization_id', 'job_roles', ['organization_id'])

    # Create people table
    op.create_table('people',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('employee_type', sa.String(length=32), nullable=True),
        sa.Column('manager_id', sa.Integer(), nullable=True),
        sa.Column('team_id', sa.Integer(), nullable=True),
        sa.Column('job_role_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['manager_id'], ['people.id']),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id']),
        sa.ForeignKeyConstraint(['job_role_id'], ['job_roles.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_people_organization_id', 'people', ['organization_id'])
    op.create_index('ix_people_manager_id', 'people', ['manager_id'])
    op.create_index('ix_people_org_status', 'people', ['organization_id', 'status'])

    # Create activity tables read by the evaluator
    op.create_table('one_on_ones',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('manager_id', sa.Integer(), nullable=False),
        sa.Column('report_id', sa.Integer(), nullable=False),
        sa.Column('scheduled_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['manager_id'], ['people.id']),
        sa.ForeignKeyConstraint(['report_id'], ['people.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_one_on_ones_manager_id', 'one_on_ones', ['manager_id'])
    op.create_index('ix_one_on_ones_report_id', 'one_on_ones', ['report_id'])

    op.create_table('initiatives',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_initiatives_organization_id', 'initiatives', ['organization_id'])

    op.create_table('check_ins',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('initiative_id', sa.Integer(), nullable=False),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['initiative_id'], ['initiatives.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_check_ins_initiative_id', 'check_ins', ['initiative_id'])

    op.create_table('feedback_campaigns',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('target_person_id', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=True),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['target_person_id'], ['people.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_feedback_campaigns_organization_id', 'feedback_campaigns', ['organization_id'])
    op.create_index('ix_feedback_campaigns_target_person_id', 'feedback_campaigns', ['target_person_id'])

    # Create tolerance_rules table
    op.create_table('tolerance_rules',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('rule_type', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_enabled', sa.Boolean(), nullable=False),
        sa.Column('config', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_tolerance_rules_organization_id', 'tolerance_rules', ['organization_id'])
    op.create_index(
        'ix_tolerance_rules_org_type_enabled', 'tolerance_rules',
        ['organization_id', 'rule_type', 'is_enabled']
    )

    # Create tolerance_exceptions table; rule_id has no foreign key so
    # exceptions outlive deleted rules
    op.create_table('tolerance_exceptions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('rule_id', sa.Integer(), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.String(length=128), nullable=False),
        sa.Column('severity', sa.String(length=16), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('context_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('acknowledged_at', sa.DateTime(), nullable=True),
        sa.Column('acknowledged_by', sa.String(length=64), nullable=True),
        sa.Column('ignored_at', sa.DateTime(), nullable=True),
        sa.Column('ignored_by', sa.String(length=64), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('resolved_by', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_tolerance_exceptions_organization_id', 'tolerance_exceptions', ['organization_id'])
    op.create_index('ix_tolerance_exceptions_org_status', 'tolerance_exceptions', ['organization_id', 'status'])
    op.create_index('ix_tolerance_exceptions_org_created', 'tolerance_exceptions', ['organization_id', 'created_at'])
    op.create_index(
        'ix_tolerance_exceptions_subject', 'tolerance_exceptions',
        ['rule_id', 'entity_type', 'entity_id']
    )
    op.create_index(
        'uq_tolerance_exceptions_active_subject', 'tolerance_exceptions',
        ['rule_id', 'entity_type', 'entity_id'],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
        sqlite_where=sa.text("status = 'active'")
    )


def downgrade() -> None:
    op.drop_table('tolerance_exceptions')
    op.drop_table('tolerance_rules')
    op.drop_table('feedback_campaigns')
    op.drop_table('check_ins')
    op.drop_table('initiatives')
    op.drop_table('one_on_ones')
    op.drop_table('people')
    op.drop_table('job_roles')
    op.drop_table('teams')
    op.drop_table('organizations')
