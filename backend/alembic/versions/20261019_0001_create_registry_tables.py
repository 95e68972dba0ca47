"""
20261019_0001_create_registry_tables.py
Alembic migration (registry store): connectors and sub_connectors, with the
unique (connector_type, account_key) index that makes duplicate accounts impossible.
"""
from alembic import op
import sqlalchemy as sa
import sqlalchemy.dialects.postgresql as pg

# revision identifiers, used by Alembic.
revision = '20261019_0001_create_registry_tables'
down_revision = None
branch_labels = ('registry',)
depends_on = None


def upgrade():
    op.create_table(
        'connectors',
        sa.Column('id', pg.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('connector_type', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('source_credential_id', pg.UUID(as_uuid=True), nullable=False),
        sa.Column('destination_credential_id', pg.UUID(as_uuid=True), nullable=False),
        sa.Column('account_key', sa.String(length=255), nullable=False),
        sa.Column('extra_information', pg.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.UniqueConstraint('connector_type', 'account_key', name='uq_connectors_type_account_key'),
    )
    op.create_table(
        'sub_connectors',
        sa.Column('id', pg.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('connector_id', pg.UUID(as_uuid=True), sa.ForeignKey('connectors.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('table_type', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    )


def downgrade():
    op.drop_table('sub_connectors')
    op.drop_table('connectors')
