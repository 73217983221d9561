"""
Test database setup and models.
"""

import pytest
from sqlalchemy import inspect, text
from sqlalchemy.exc import IntegrityError

from busnet.data.db_broker import ConnectionBroker
from busnet.ingest.schema import Stop, Route, RouteStop, initialize_database


class TestTableStructure:
    """Test that tables are created correctly."""

    def test_tables_exist(self):
        tables = inspect(ConnectionBroker.get_engine()).get_table_names()
        assert {'stops', 'routes', 'route_stops'} <= set(tables)

    def test_stops_table_columns(self):
        columns = {c['name'] for c in inspect(ConnectionBroker.get_engine()).get_columns('stops')}
        assert {'id', 'name', 'latitude', 'longitude', 'address', 'landmarks', 'status'} <= columns

    def test_route_stops_table_columns(self):
        columns = {c['name'] for c in inspect(ConnectionBroker.get_engine()).get_columns('route_stops')}
        assert {
            'id', 'route_id', 'stop_id', 'stop_order', 'direction',
            'average_arrival_time', 'distance_from_previous'
        } <= columns

    def test_route_stop_unique_constraint(self):
        constraints = inspect(ConnectionBroker.get_engine()).get_unique_constraints('route_stops')
        column_sets = [tuple(c['column_names']) for c in constraints]
        assert ('route_id', 'direction', 'stop_order') in column_sets

    def test_initialize_database_drop_existing(self):
        engine = ConnectionBroker.get_engine()
        with ConnectionBroker.get_session() as session:
            session.add(Stop(name='Temp', latitude=1.0, longitude=2.0))

        initialize_database(engine, drop_existing=True)

        with ConnectionBroker.get_session() as session:
            assert session.query(Stop).count() == 0


class TestModels:
    """Test SQLAlchemy models."""

    def test_stop_model_creation(self):
        stop = Stop(name='Plaza Central', latitude=19.4326, longitude=-99.1332)

        assert stop.name == 'Plaza Central'
        assert stop.coordinates == (19.4326, -99.1332)
        assert stop.coordinates.latitude == 19.4326
        assert stop.coordinates.longitude == -99.1332

    def test_defaults_applied_on_insert(self):
        with ConnectionBroker.get_session() as session:
            stop = Stop(name='Mercado', latitude=19.43, longitude=-99.14)
            route = Route(name='Centro', code='R1')
            session.add_all([stop, route])
            session.flush()
            session.refresh(stop)
            session.refresh(route)

            assert stop.status == 'active'
            assert stop.created_at is not None
            assert route.status == 'active'
            assert route.color == '#3498db'

    def test_duplicate_order_rejected_by_database(self):
        with ConnectionBroker.get_session() as session:
            stop_a = Stop(name='A', latitude=0.0, longitude=0.0)
            stop_b = Stop(name='B', latitude=1.0, longitude=1.0)
            route = Route(name='Line', code='L1')
            session.add_all([stop_a, stop_b, route])
            session.flush()
            route_id, stop_a_id, stop_b_id = route.id, stop_a.id, stop_b.id

            session.add(RouteStop(route_id=route_id, stop_id=stop_a_id, stop_order=1, direction='outbound'))

        with pytest.raises(IntegrityError):
            with ConnectionBroker.get_session() as session:
                session.add(RouteStop(route_id=route_id, stop_id=stop_b_id, stop_order=1, direction='outbound'))

        with ConnectionBroker.get_session() as session:
            assert session.query(RouteStop).count() == 1

    def test_foreign_keys_enforced(self):
        with pytest.raises(IntegrityError):
            with ConnectionBroker.get_session() as session:
                session.add(RouteStop(route_id=999, stop_id=999, stop_order=1, direction='outbound'))

    def test_invalid_direction_rejected_by_database(self):
        with ConnectionBroker.get_session() as session:
            stop = Stop(name='A', latitude=0.0, longitude=0.0)
            route = Route(name='Line', code='L1')
            session.add_all([stop, route])
            session.flush()
            ids = (route.id, stop.id)

        with pytest.raises(IntegrityError):
            with ConnectionBroker.get_session() as session:
                session.add(RouteStop(route_id=ids[0], stop_id=ids[1], stop_order=1, direction='sideways'))

    def test_sqlite_foreign_key_pragma(self):
        with ConnectionBroker.get_session() as session:
            assert session.execute(text("PRAGMA foreign_keys")).scalar() == 1
