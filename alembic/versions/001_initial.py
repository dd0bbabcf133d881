"""Initial schema: integration credentials, imported activities, audit events

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'integration_credentials',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('connected', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('external_account_id', sa.String(32), nullable=True),

        # Tokens (ciphertext only)
        sa.Column('access_token_encrypted', sa.Text(), nullable=True),
        sa.Column('refresh_token_encrypted', sa.Text(), nullable=True),
        sa.Column('expires_at', sa.BigInteger(), nullable=True),
        sa.Column('scope', sa.String(255), nullable=True),

        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('user_id', 'provider', name='uq_credential_user_provider'),
    )
    op.create_index('ix_integration_credentials_user_id', 'integration_credentials', ['user_id'])
    op.create_index(
        'ix_integration_credentials_external_account_id',
        'integration_credentials',
        ['external_account_id'],
    )

    op.create_table(
        'imported_activities',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('owner_id', sa.String(36), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('external_id', sa.String(32), nullable=False),

        # Workout
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.Column('distance_km', sa.Float(), nullable=False),
        sa.Column('duration_seconds', sa.Integer(), nullable=False),
        sa.Column('pace_sec_per_km', sa.Integer(), nullable=False),
        sa.Column('workout_type', sa.String(20), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),

        sa.Column('imported_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint(
            'owner_id', 'provider', 'external_id',
            name='uq_imported_activity_owner_provider_external',
        ),
    )
    op.create_index('ix_imported_activities_owner_id', 'imported_activities', ['owner_id'])
    op.create_index('ix_imported_activities_date', 'imported_activities', ['date'])

    op.create_table(
        'integration_audit_events',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('action', sa.String(32), nullable=False),
        sa.Column('detail', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_integration_audit_events_user_id', 'integration_audit_events', ['user_id'])


def downgrade() -> None:
    op.drop_index('ix_integration_audit_events_user_id', 'integration_audit_events')
    op.drop_table('integration_audit_events')

    op.drop_index('ix_imported_activities_date', 'imported_activities')
    op.drop_index('ix_imported_activities_owner_id', 'imported_activities')
    op.drop_table('imported_activities')

    op.drop_index('ix_integration_credentials_external_account_id', 'integration_credentials')
    op.drop_index('ix_integration_credentials_user_id', 'integration_credentials')
    op.drop_table('integration_credentials')
