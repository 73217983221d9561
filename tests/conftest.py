"""
Shared fixtures.

Tests run against an in-memory SQLite database; the environment is set
before busnet is imported so the configuration picks it up.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["IMPORT_SHOW_PROGRESS"] = "false"

import pytest

from busnet.data.db_broker import ConnectionBroker, Base
from busnet.data.entity_store import EntityStore


@pytest.fixture(autouse=True)
def database():
    """Fresh schema for every test."""
    ConnectionBroker.reset()
    ConnectionBroker.create_tables()
    yield ConnectionBroker.get_engine()
    Base.metadata.drop_all(bind=ConnectionBroker.get_engine())
    ConnectionBroker.reset()


@pytest.fixture
def sample_network():
    """
    Two routes sharing one stop, plus an unserved stop.

    R1 outbound: Plaza Central (1) -> Mercado (2, 1.5) -> Terminal Norte (3, 2.25)
    R1 inbound:  Terminal Norte (1) -> Plaza Central (2, 3.75)
    R2 outbound: Plaza Central (1) -> Hospital (2, no distance)
    Parque Sur has no routes.
    """
    with ConnectionBroker.get_session() as session:
        store = EntityStore(session)
        plaza = store.create_stop('Plaza Central', 19.4326, -99.1332)
        mercado = store.create_stop('Mercado', 19.4300, -99.1400)
        terminal = store.create_stop('Terminal Norte', 19.4800, -99.1200)
        hospital = store.create_stop('Hospital', 19.4100, -99.1600)
        parque = store.create_stop('Parque Sur', 19.3900, -99.1500)

        r1 = store.create_route('Centro - Norte', 'R1', color='#e74c3c')
        r2 = store.create_route('Centro - Hospital', 'R2')

        store.create_route_stop(r1.id, plaza.id, 1, 'outbound')
        store.create_route_stop(r1.id, mercado.id, 2, 'outbound', distance_from_previous=1.5)
        store.create_route_stop(r1.id, terminal.id, 3, 'outbound', distance_from_previous=2.25,
                                average_arrival_time=12)
        store.create_route_stop(r1.id, terminal.id, 1, 'inbound')
        store.create_route_stop(r1.id, plaza.id, 2, 'inbound', distance_from_previous=3.75)
        store.create_route_stop(r2.id, plaza.id, 1, 'outbound')
        store.create_route_stop(r2.id, hospital.id, 2, 'outbound')

        return {
            'plaza': plaza.id,
            'mercado': mercado.id,
            'terminal': terminal.id,
            'hospital': hospital.id,
            'parque': parque.id,
            'r1': r1.id,
            'r2': r2.id,
        }
