"""Create routes and certificates tables.

Revision ID: 001
Revises: 
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'routes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('instance_id', sa.String(length=255), nullable=False),
        sa.Column('state', sa.String(length=50), nullable=False),
        sa.Column('domain_external', sa.String(length=4096), nullable=False, server_default=''),
        sa.Column('domain_internal', sa.String(length=255), nullable=True),
        sa.Column('dist_id', sa.String(length=255), nullable=True),
        sa.Column('origin', sa.String(length=1024), nullable=False, server_default=''),
        sa.Column('path', sa.String(length=1024), nullable=False, server_default=''),
        sa.Column('insecure_origin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('default_ttl', sa.Integer(), nullable=False, server_default='86400'),
        sa.Column('forwarded_headers', sa.String(length=4096), nullable=False, server_default=''),
        sa.Column('forward_cookies', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('provisioning_since', sa.DateTime(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_routes_id', 'routes', ['id'])
    op.create_index('ix_routes_instance_id', 'routes', ['instance_id'], unique=True)
    op.create_index('ix_routes_state', 'routes', ['state'])

    op.create_table(
        'certificates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'route_id',
            sa.Integer(),
            sa.ForeignKey('routes.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'certificate_arn',
            sa.String(length=2048),
            nullable=False,
            server_default='managedbyletsencrypt',
        ),
        sa.Column('certificate_status', sa.String(length=50), nullable=False, server_default='letsencrypt'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        # Legacy columns, never written by current code
        sa.Column('domain', sa.String(length=1024), nullable=True),
        sa.Column('cert_url', sa.String(length=2048), nullable=True),
        sa.Column('certificate', sa.LargeBinary(), nullable=True),
        sa.Column('expires', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_certificates_id', 'certificates', ['id'])
    op.create_index('ix_certificates_route_id', 'certificates', ['route_id'])
    op.create_index('ix_certificates_expires', 'certificates', ['expires'])


def downgrade() -> None:
    op.drop_index('ix_certificates_expires', table_name='certificates')
    op.drop_index('ix_certificates_route_id', table_name='certificates')
    op.drop_index('ix_certificates_id', table_name='certificates')
    op.drop_table('certificates')
    op.drop_index('ix_routes_state', table_name='routes')
    op.drop_index('ix_routes_instance_id', table_name='routes')
    op.drop_index('ix_routes_id', table_name='routes')
    op.drop_table('routes')
