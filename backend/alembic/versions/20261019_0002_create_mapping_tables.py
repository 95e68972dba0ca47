"""
20261019_0002_create_mapping_tables.py
Alembic migration (mapping store): company -> connector mapping and company -> destination credential.
"""
from alembic import op
import sqlalchemy as sa
import sqlalchemy.dialects.postgresql as pg

# revision identifiers, used by Alembic.
revision = '20261019_0002_create_mapping_tables'
down_revision = None
branch_labels = ('mapping',)
depends_on = None


def upgrade():
    op.create_table(
        'company_to_connector_mapping',
        sa.Column('connector_id', pg.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('company_id', pg.UUID(as_uuid=True), nullable=False),
        sa.Column('connector_type', sa.String(length=64), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=False),
        sa.Column('extra_information', pg.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index(
        'ix_company_to_connector_mapping_company',
        'company_to_connector_mapping',
        ['company_id', 'connector_type'],
    )
    op.create_table(
        'company_to_destination_mapping',
        sa.Column('company_id', pg.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('destination_credential_id', pg.UUID(as_uuid=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    )


def downgrade():
    op.drop_table('company_to_destination_mapping')
    op.drop_index('ix_company_to_connector_mapping_company', table_name='company_to_connector_mapping')
    op.drop_table('company_to_connector_mapping')
