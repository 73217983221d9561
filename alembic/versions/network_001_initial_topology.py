"""Initial network topology: stops, routes and route stops

Revision ID: network_001
Revises: 
Create Date: 2026-10-19 10:00:00

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = 'network_001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'stops',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('address', sa.String(255), nullable=True),
        sa.Column('landmarks', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('latitude >= -90 AND latitude <= 90', name='ck_stop_latitude'),
        sa.CheckConstraint('longitude >= -180 AND longitude <= 180', name='ck_stop_longitude'),
    )
    op.create_index('ix_stops_name', 'stops', ['name'], unique=True)
    op.create_index('ix_stops_status', 'stops', ['status'])

    op.create_table(
        'routes',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('color', sa.String(7), nullable=False, server_default='#3498db'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('operating_hours', sa.JSON(), nullable=True),
        sa.Column('fare_price', sa.Float(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('fare_price IS NULL OR fare_price >= 0', name='ck_route_fare_price'),
    )
    op.create_index('ix_routes_code', 'routes', ['code'], unique=True)
    op.create_index('ix_routes_status', 'routes', ['status'])

    op.create_table(
        'route_stops',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('route_id', sa.Integer(), sa.ForeignKey('routes.id'), nullable=False),
        sa.Column('stop_id', sa.Integer(), sa.ForeignKey('stops.id'), nullable=False),
        sa.Column('stop_order', sa.Integer(), nullable=False),
        sa.Column('direction', sa.String(10), nullable=False),
        sa.Column('average_arrival_time', sa.Integer(), nullable=True),
        sa.Column('distance_from_previous', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('route_id', 'direction', 'stop_order', name='uq_route_direction_order'),
        sa.CheckConstraint('stop_order >= 1', name='ck_route_stop_order'),
        sa.CheckConstraint("direction IN ('outbound', 'inbound')", name='ck_route_stop_direction'),
        sa.CheckConstraint(
            'distance_from_previous IS NULL OR distance_from_previous >= 0',
            name='ck_route_stop_distance'
        ),
    )
    op.create_index('ix_route_stops_route_id', 'route_stops', ['route_id'])
    op.create_index('ix_route_stops_stop_id', 'route_stops', ['stop_id'])
    op.create_index('idx_route_stop_stop_route', 'route_stops', ['stop_id', 'route_id'])


def downgrade() -> None:
    op.drop_index('idx_route_stop_stop_route', 'route_stops')
    op.drop_index('ix_route_stops_stop_id', 'route_stops')
    op.drop_index('ix_route_stops_route_id', 'route_stops')
    op.drop_table('route_stops')

    op.drop_index('ix_routes_status', 'routes')
    op.drop_index('ix_routes_code', 'routes')
    op.drop_table('routes')

    op.drop_index('ix_stops_status', 'stops')
    op.drop_index('ix_stops_name', 'stops')
    op.drop_table('stops')
