"""
SQLAlchemy models for the bus network database.

Stop, Route and RouteStop make up the network topology. RouteStop is the
directional, ordered edge between a route and one of its stops.
"""

from collections import namedtuple

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, ForeignKey, Text, JSON,
    Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .db_broker import Base


STOP_STATUSES = ('active', 'inactive', 'under_construction')
ROUTE_STATUSES = ('active', 'inactive', 'seasonal')
DIRECTIONS = ('outbound', 'inbound')

DEFAULT_ROUTE_COLOR = '#3498db'

Coordinates = namedtuple('Coordinates', ['latitude', 'longitude'])


class Stop(Base):
    """Bus stops, identified externally by their unique name."""

    __tablename__ = 'stops'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(String(255), nullable=True)
    landmarks = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default='active', index=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    route_stops = relationship('RouteStop', back_populates='stop')

    __table_args__ = (
        CheckConstraint('latitude >= -90 AND latitude <= 90', name='ck_stop_latitude'),
        CheckConstraint('longitude >= -180 AND longitude <= 180', name='ck_stop_longitude'),
    )

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(self.latitude, self.longitude)

    def __repr__(self):
        return f"<Stop(id={self.id}, name='{self.name}', status='{self.status}')>"


class Route(Base):
    """Bus routes, identified externally by their unique code."""

    __tablename__ = 'routes'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    code = Column(String(50), unique=True, nullable=False, index=True)
    color = Column(String(7), nullable=False, default=DEFAULT_ROUTE_COLOR)
    description = Column(Text, nullable=True)
    operating_hours = Column(JSON, nullable=True)  # {"start": "HH:MM", "end": "HH:MM", "days": [...]}
    fare_price = Column(Float, nullable=True)
    status = Column(String(20), nullable=False, default='active', index=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    route_stops = relationship('RouteStop', back_populates='route')

    __table_args__ = (
        CheckConstraint('fare_price IS NULL OR fare_price >= 0', name='ck_route_fare_price'),
    )

    def __repr__(self):
        return f"<Route(id={self.id}, code='{self.code}', name='{self.name}', status='{self.status}')>"


class RouteStop(Base):
    """A stop's position in one direction of a route."""

    __tablename__ = 'route_stops'

    id = Column(Integer, primary_key=True, autoincrement=True)
    route_id = Column(Integer, ForeignKey('routes.id'), nullable=False, index=True)
    stop_id = Column(Integer, ForeignKey('stops.id'), nullable=False, index=True)
    stop_order = Column(Integer, nullable=False)
    direction = Column(String(10), nullable=False)
    average_arrival_time = Column(Integer, nullable=True)  # minutes
    distance_from_previous = Column(Float, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    # Relationships
    route = relationship('Route', back_populates='route_stops')
    stop = relationship('Stop', back_populates='route_stops')

    __table_args__ = (
        UniqueConstraint('route_id', 'direction', 'stop_order', name='uq_route_direction_order'),
        CheckConstraint('stop_order >= 1', name='ck_route_stop_order'),
        CheckConstraint("direction IN ('outbound', 'inbound')", name='ck_route_stop_direction'),
        CheckConstraint(
            'distance_from_previous IS NULL OR distance_from_previous >= 0',
            name='ck_route_stop_distance'
        ),
        Index('idx_route_stop_stop_route', 'stop_id', 'route_id'),
    )

    def __repr__(self):
        return (
            f"<RouteStop(id={self.id}, route={self.route_id}, stop={self.stop_id}, "
            f"direction='{self.direction}', order={self.stop_order})>"
        )
