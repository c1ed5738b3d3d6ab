"""Create price list, assignment, override and sync job tables

Revision ID: 002
Revises: 001
Create Date: 2026-10-18 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None

TABLES = ['price_list', 'price_list_item', 'customer_price_assignment', 'price_override', 'price_list_sync_job']


def _uuid(name, nullable=False, primary=False):
    if primary:
        return sa.Column(name, postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False)
    return sa.Column(name, postgresql.UUID(as_uuid=True), nullable=nullable)


def _jsonb(name, default="'{}'::jsonb"):
    return sa.Column(name, postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text(default), nullable=False)


def _timestamps():
    return [
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    ]


def upgrade():
    op.create_table(
        'price_list',
        _uuid('id', primary=True),
        _uuid('org_id'),
        sa.Column('code', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.Text(), server_default=sa.text("'STANDARD'"), nullable=False),
        sa.Column('status', sa.Text(), server_default=sa.text("'ACTIVE'"), nullable=False),
        sa.Column('currency', sa.Text(), nullable=False),
        sa.Column('priority', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('effective_to', sa.Date(), nullable=True),
        _uuid('base_price_list_id', nullable=True),
        sa.Column('price_modifier', sa.Numeric(18, 4), nullable=True),
        sa.Column('rounding_rule', sa.Text(), server_default=sa.text("'NEAREST'"), nullable=False),
        sa.Column('rounding_precision', sa.Integer(), server_default=sa.text('2'), nullable=False),
        sa.Column('is_default', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('is_customer_specific', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('external_id', sa.Text(), nullable=True),
        sa.Column('external_system', sa.Text(), nullable=True),
        sa.Column('last_sync_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('sync_status', sa.Text(), nullable=True),
        _jsonb('metadata_json'),
        *_timestamps(),
        sa.Column('deleted_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['org_id'], ['org.id'], name='fk_price_list_org', ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['base_price_list_id'], ['price_list.id'], name='fk_price_list_base', ondelete='SET NULL'),
        sa.UniqueConstraint('org_id', 'code', name='uq_price_list_org_code'),
        sa.CheckConstraint('rounding_precision >= 0', name='ck_price_list_rounding_precision'),
    )
    op.create_index('ix_price_list_org_id', 'price_list', ['org_id'])
    op.create_index('ix_price_list_org_status', 'price_list', ['org_id', 'status'])
    # At most one default list per organization
    op.create_index(
        'ux_price_list_org_default', 'price_list', ['org_id'],
        unique=True, postgresql_where=sa.text('is_default')
    )

    op.create_table(
        'price_list_item',
        _uuid('id', primary=True),
        _uuid('price_list_id'),
        sa.Column('sku', sa.Text(), nullable=False),
        _uuid('master_product_id', nullable=True),
        sa.Column('base_price', sa.Numeric(18, 4), nullable=False),
        sa.Column('list_price', sa.Numeric(18, 4), nullable=False),
        sa.Column('min_price', sa.Numeric(18, 4), nullable=True),
        sa.Column('max_price', sa.Numeric(18, 4), nullable=True),
        sa.Column('cost', sa.Numeric(18, 4), nullable=True),
        sa.Column('currency', sa.Text(), nullable=True),
        _jsonb('quantity_breaks', default="'[]'::jsonb"),
        sa.Column('max_discount_percent', sa.Numeric(7, 4), nullable=True),
        sa.Column('is_discountable', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('effective_from', sa.Date(), nullable=True),
        sa.Column('effective_to', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('uom', sa.Text(), server_default=sa.text("'EA'"), nullable=False),
        sa.Column('external_id', sa.Text(), nullable=True),
        sa.Column('external_system', sa.Text(), nullable=True),
        sa.Column('last_sync_at', sa.TIMESTAMP(timezone=True), nullable=True),
        _jsonb('metadata_json'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['price_list_id'], ['price_list.id'], name='fk_price_list_item_list', ondelete='CASCADE'),
        sa.UniqueConstraint('price_list_id', 'sku', name='uq_price_list_item_list_sku'),
        sa.CheckConstraint('base_price >= 0', name='ck_price_list_item_base_price_non_negative'),
        sa.CheckConstraint('list_price >= 0', name='ck_price_list_item_list_price_non_negative'),
    )
    op.create_index('ix_price_list_item_sku', 'price_list_item', ['sku'])

    op.create_table(
        'customer_price_assignment',
        _uuid('id', primary=True),
        _uuid('org_id'),
        _uuid('price_list_id'),
        sa.Column('assignment_type', sa.Text(), nullable=False),
        sa.Column('assignment_id', sa.Text(), nullable=False),
        sa.Column('priority', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('effective_to', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('external_ref', sa.Text(), nullable=True),
        _jsonb('metadata_json'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['org_id'], ['org.id'], name='fk_customer_price_assignment_org', ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['price_list_id'], ['price_list.id'], name='fk_customer_price_assignment_list', ondelete='CASCADE'),
        sa.UniqueConstraint(
            'org_id', 'price_list_id', 'assignment_type', 'assignment_id',
            name='uq_customer_price_assignment_target'
        ),
    )
    op.create_index(
        'ix_customer_price_assignment_lookup', 'customer_price_assignment',
        ['org_id', 'assignment_type', 'assignment_id']
    )

    op.create_table(
        'price_override',
        _uuid('id', primary=True),
        _uuid('org_id'),
        _uuid('price_list_item_id'),
        sa.Column('override_type', sa.Text(), nullable=False),
        sa.Column('override_value', sa.Numeric(18, 4), nullable=False),
        sa.Column('scope_type', sa.Text(), nullable=False),
        sa.Column('scope_id', sa.Text(), nullable=False),
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('effective_to', sa.Date(), nullable=True),
        sa.Column('min_quantity', sa.Numeric(18, 3), nullable=True),
        sa.Column('max_quantity', sa.Numeric(18, 3), nullable=True),
        sa.Column('status', sa.Text(), server_default=sa.text("'ACTIVE'"), nullable=False),
        sa.Column('approved_by_id', sa.Text(), nullable=True),
        sa.Column('approved_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('external_ref', sa.Text(), nullable=True),
        _jsonb('metadata_json'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['org_id'], ['org.id'], name='fk_price_override_org', ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['price_list_item_id'], ['price_list_item.id'], name='fk_price_override_item', ondelete='CASCADE'),
        sa.CheckConstraint('override_value >= 0', name='ck_price_override_value_non_negative'),
    )
    op.create_index('ix_price_override_scope', 'price_override', ['org_id', 'scope_type', 'scope_id', 'status'])
    op.create_index('ix_price_override_item', 'price_override', ['price_list_item_id'])

    op.create_table(
        'price_list_sync_job',
        _uuid('id', primary=True),
        _uuid('org_id'),
        _uuid('price_list_id'),
        sa.Column('job_type', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('total_items', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('processed_items', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('success_count', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('error_count', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('skipped_count', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('delta_token', sa.Text(), nullable=True),
        sa.Column('connector_id', sa.Text(), nullable=True),
        sa.Column('started_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('errors', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('summary', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['org_id'], ['org.id'], name='fk_price_list_sync_job_org', ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['price_list_id'], ['price_list.id'], name='fk_price_list_sync_job_list', ondelete='CASCADE'),
    )
    op.create_index('ix_price_list_sync_job_org_status', 'price_list_sync_job', ['org_id', 'status'])
    op.create_index(
        'ix_price_list_sync_job_list_type', 'price_list_sync_job',
        ['price_list_id', 'job_type', 'status']
    )

    for table in TABLES:
        op.execute(f"""
            CREATE TRIGGER update_{table}_updated_at
            BEFORE UPDATE ON {table}
            FOR EACH ROW
            EXECUTE FUNCTION update_updated_at_column();
        """)


def downgrade():
    for table in reversed(TABLES):
        op.execute(f'DROP TRIGGER IF EXISTS update_{table}_updated_at ON {table}')
        op.drop_table(table)
