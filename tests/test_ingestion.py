"""
Test the batch import reconciler.
"""

import pytest
from contextlib import contextmanager
from unittest.mock import patch
from sqlalchemy.exc import OperationalError

from busnet.data.db_broker import ConnectionBroker
from busnet.data.entity_store import EntityStore
from busnet.data.models import Stop, Route, RouteStop
from busnet.ingest.reconciler import ImportReconciler, StageResult
from busnet.ingest.sinks import RecordingSink, LoggingSink, CREATED, SKIPPED, ERROR


STOPS = [
    {'name': 'Plaza Central', 'description': 'Main square', 'latitude': 19.4326,
     'longitude': -99.1332, 'address': 'Av. Juarez 1', 'landmarks': 'Cathedral'},
    {'name': 'Mercado', 'latitude': 19.43, 'longitude': -99.14},
    {'name': 'Terminal Norte', 'latitude': 19.48, 'longitude': -99.12},
]

ROUTES = [
    {'name': 'Centro - Norte', 'code': 'R1', 'color': '#e74c3c',
     'operatingHours': {'start': '05:00', 'end': '23:30', 'days': ['mon', 'fri']},
     'farePrice': 7.5},
    {'name': 'Circuito', 'code': 'R2'},
]

LINKS = [
    {'routeCode': 'R1', 'stopName': 'Plaza Central', 'direction': 'outbound', 'stopOrder': 1},
    {'routeCode': 'R1', 'stopName': 'Mercado', 'direction': 'outbound', 'stopOrder': 2,
     'distanceFromPrevious': 1.2, 'averageArrivalTime': 4},
    {'routeCode': 'R1', 'stopName': 'Terminal Norte', 'direction': 'outbound', 'stopOrder': 3,
     'distanceFromPrevious': 2.8},
    {'routeCode': 'R1', 'stopName': 'Terminal Norte', 'direction': 'inbound', 'stopOrder': 1},
]


def _counts():
    with ConnectionBroker.get_session() as session:
        return (
            session.query(Stop).count(),
            session.query(Route).count(),
            session.query(RouteStop).count(),
        )


class TestImportReconciler:
    """Test the three import stages."""

    @pytest.fixture
    def sink(self):
        return RecordingSink()

    @pytest.fixture
    def reconciler(self, sink):
        return ImportReconciler(sink=sink, show_progress=False)

    def test_import_stops(self, reconciler):
        result = reconciler.import_stops(STOPS)

        assert result == StageResult(created=3, skipped=0, errors=0)
        with ConnectionBroker.get_session() as session:
            plaza = EntityStore(session).find_stop_by_name('Plaza Central')
            assert plaza.description == 'Main square'
            assert plaza.coordinates == (19.4326, -99.1332)
            assert plaza.landmarks == 'Cathedral'

    def test_stop_import_is_idempotent(self, reconciler):
        records = [{'name': 'Plaza Central', 'latitude': 19.4326, 'longitude': -99.1332}]

        first = reconciler.import_stops(records)
        count_after_first = _counts()[0]
        second = reconciler.import_stops(records)

        assert first.as_dict() == {'created': 1, 'skipped': 0, 'errors': 0}
        assert second.as_dict() == {'created': 0, 'skipped': 1, 'errors': 0}
        assert _counts()[0] == count_after_first == 1

    def test_invalid_stop_does_not_abort_stage(self, reconciler, sink):
        records = [
            {'name': 'Too Far North', 'latitude': 95.0, 'longitude': 0.0},
            {'name': 'No Coordinates'},
            'not even an object',
            {'name': 'Mercado', 'latitude': 19.43, 'longitude': -99.14},
        ]

        result = reconciler.import_stops(records)

        assert result == StageResult(created=1, skipped=0, errors=3)
        assert sink.outcomes('stops') == [ERROR, ERROR, ERROR, CREATED]
        assert sink.events[0].record_key == 'Too Far North'
        assert 'latitude' in sink.events[0].detail
        assert sink.events[1].record_key == 'No Coordinates'
        assert sink.events[2].record_key == '<unparseable record>'
        assert _counts()[0] == 1

    def test_duplicate_names_within_one_file(self, reconciler):
        records = [
            {'name': 'Mercado', 'latitude': 19.43, 'longitude': -99.14},
            {'name': 'Mercado', 'latitude': 19.43, 'longitude': -99.14},
        ]

        assert reconciler.import_stops(records) == StageResult(created=1, skipped=1, errors=0)

    def test_concurrent_unique_violation_counted_as_error(self, reconciler, sink):
        reconciler.import_stops([STOPS[1]])

        # Another writer inserted the stop between the existence check and the insert
        with patch.object(EntityStore, 'find_stop_by_name', return_value=None):
            result = reconciler.import_stops([STOPS[1]])

        assert result == StageResult(created=0, skipped=0, errors=1)
        assert sink.events[-1].outcome == ERROR
        assert sink.events[-1].record_key == 'Mercado'
        assert _counts()[0] == 1

    def test_import_routes(self, reconciler):
        result = reconciler.import_routes(ROUTES)

        assert result == StageResult(created=2, skipped=0, errors=0)
        with ConnectionBroker.get_session() as session:
            store = EntityStore(session)
            r1 = store.find_route_by_code('R1')
            assert r1.operating_hours == {'start': '05:00', 'end': '23:30', 'days': ['mon', 'fri']}
            assert r1.fare_price == 7.5
            assert store.find_route_by_code('R2').color == '#3498db'

    def test_route_import_is_idempotent(self, reconciler):
        reconciler.import_routes(ROUTES)
        assert reconciler.import_routes(ROUTES) == StageResult(created=0, skipped=2, errors=0)
        assert _counts()[1] == 2

    def test_malformed_route_fields(self, reconciler, sink):
        records = [
            {'name': 'Bad Color', 'code': 'X1', 'color': 'blue'},
            {'name': 'Bad Hours', 'code': 'X2', 'operatingHours': {'start': '31:00'}},
            {'name': 'Negative Fare', 'code': 'X3', 'farePrice': -1},
            {'name': 'Missing code'},
            {'name': 'Fine', 'code': 'X4'},
        ]

        result = reconciler.import_routes(records)

        assert result == StageResult(created=1, skipped=0, errors=4)
        assert [e.record_key for e in sink.events[:3]] == ['X1', 'X2', 'X3']
        assert sink.events[3].record_key == 'Missing code'

    def test_import_links(self, reconciler):
        reconciler.import_stops(STOPS)
        reconciler.import_routes(ROUTES)

        result = reconciler.import_route_stops(LINKS)

        assert result == StageResult(created=4, skipped=0, errors=0)
        with ConnectionBroker.get_session() as session:
            link = session.query(RouteStop).filter_by(direction='outbound', stop_order=2).one()
            assert link.distance_from_previous == 1.2
            assert link.average_arrival_time == 4

    def test_unresolved_reference_does_not_block_later_records(self, reconciler, sink):
        reconciler.import_stops([{'name': 'Plaza Central', 'latitude': 19.4326, 'longitude': -99.1332}])
        reconciler.import_routes([{'name': 'Centro', 'code': 'R1'}])
        records = [
            {'routeCode': 'R1', 'stopName': 'Plaza Central', 'direction': 'outbound', 'stopOrder': 1},
            {'routeCode': 'R1', 'stopName': 'Unknown Stop', 'direction': 'outbound', 'stopOrder': 2},
        ]

        result = reconciler.import_route_stops(records)

        assert result.as_dict() == {'created': 1, 'skipped': 0, 'errors': 1}
        assert _counts()[2] == 1
        assert 'Unknown Stop' in sink.events[-1].detail

    def test_unresolved_route_then_valid_record(self, reconciler):
        reconciler.import_stops(STOPS)
        reconciler.import_routes(ROUTES)
        records = [
            {'routeCode': 'NOPE', 'stopName': 'Mercado', 'direction': 'outbound', 'stopOrder': 1},
            {'routeCode': 'R2', 'stopName': 'Mercado', 'direction': 'outbound', 'stopOrder': 1},
        ]

        assert reconciler.import_route_stops(records) == StageResult(created=1, skipped=0, errors=1)

    def test_link_import_is_idempotent(self, reconciler):
        reconciler.import_stops(STOPS)
        reconciler.import_routes(ROUTES)
        reconciler.import_route_stops(LINKS)

        assert reconciler.import_route_stops(LINKS) == StageResult(created=0, skipped=4, errors=0)
        assert _counts()[2] == 4

    def test_conflicting_slot_is_an_error_not_an_overwrite(self, reconciler):
        reconciler.import_stops(STOPS)
        reconciler.import_routes(ROUTES)
        reconciler.import_route_stops(LINKS[:1])

        # Same route/direction/order, different stop
        conflict = [{'routeCode': 'R1', 'stopName': 'Mercado', 'direction': 'outbound', 'stopOrder': 1}]
        assert reconciler.import_route_stops(conflict) == StageResult(created=0, skipped=0, errors=1)

        with ConnectionBroker.get_session() as session:
            link = session.query(RouteStop).filter_by(direction='outbound', stop_order=1).one()
            assert link.stop.name == 'Plaza Central'

    def test_invalid_link_fields(self, reconciler):
        reconciler.import_stops(STOPS)
        reconciler.import_routes(ROUTES)
        records = [
            {'routeCode': 'R1', 'stopName': 'Mercado', 'direction': 'sideways', 'stopOrder': 1},
            {'routeCode': 'R1', 'stopName': 'Mercado', 'direction': 'outbound', 'stopOrder': 0},
            {'routeCode': 'R1', 'stopName': 'Mercado', 'direction': 'outbound'},
        ]

        assert reconciler.import_route_stops(records) == StageResult(created=0, skipped=0, errors=3)
        assert _counts()[2] == 0

    def test_non_finite_distances_are_errors(self, reconciler, sink):
        reconciler.import_stops(STOPS)
        reconciler.import_routes(ROUTES)
        # json.load turns the Infinity and NaN literals into these floats
        records = [
            {'routeCode': 'R1', 'stopName': 'Plaza Central', 'direction': 'outbound',
             'stopOrder': 1, 'distanceFromPrevious': float('inf')},
            {'routeCode': 'R1', 'stopName': 'Mercado', 'direction': 'outbound',
             'stopOrder': 2, 'distanceFromPrevious': float('nan')},
        ]

        assert reconciler.import_route_stops(records) == StageResult(created=0, skipped=0, errors=2)
        assert sink.outcomes('route-stops') == [ERROR, ERROR]
        assert _counts()[2] == 0

    def test_non_finite_coordinates_and_fare_are_errors(self, reconciler):
        stops = [{'name': 'Adrift', 'latitude': float('nan'), 'longitude': 0.0}]
        routes = [{'name': 'Priceless', 'code': 'P1', 'farePrice': float('inf')}]

        assert reconciler.import_stops(stops) == StageResult(created=0, skipped=0, errors=1)
        assert reconciler.import_routes(routes) == StageResult(created=0, skipped=0, errors=1)

    def test_over_long_fields_are_errors_not_fatal(self, reconciler, sink):
        stops = [
            {'name': 'x' * 256, 'latitude': 0.0, 'longitude': 0.0},
            {'name': 'Depot', 'latitude': 0.0, 'longitude': 0.0, 'address': 'a' * 300},
            STOPS[1],
        ]
        routes = [{'name': 'Long Code', 'code': 'C' * 51}, ROUTES[1]]

        assert reconciler.import_stops(stops) == StageResult(created=1, skipped=0, errors=2)
        assert reconciler.import_routes(routes) == StageResult(created=1, skipped=0, errors=1)
        assert 'at most 50 characters' in sink.events[3].detail
        assert _counts()[:2] == (1, 1)

    def test_run_all(self, reconciler):
        report = reconciler.run_all(STOPS, ROUTES, LINKS)

        assert report.as_dict() == {
            'stops': {'created': 3, 'skipped': 0, 'errors': 0},
            'routes': {'created': 2, 'skipped': 0, 'errors': 0},
            'route-stops': {'created': 4, 'skipped': 0, 'errors': 0},
        }

    def test_run_all_continues_past_failed_stage_records(self, reconciler):
        stops = STOPS + [{'name': 'Broken', 'latitude': 'x', 'longitude': 0}]

        report = reconciler.run_all(stops, ROUTES, LINKS)

        assert report.stops == StageResult(created=3, skipped=0, errors=1)
        assert report.route_stops == StageResult(created=4, skipped=0, errors=0)

    def test_sink_receives_every_record(self, reconciler, sink):
        reconciler.run_all(STOPS, ROUTES, LINKS)

        assert [e.stage for e in sink.events] == ['stops'] * 3 + ['routes'] * 2 + ['route-stops'] * 4
        assert sink.events[0].record_key == 'Plaza Central'
        assert sink.events[3].record_key == 'R1'
        assert sink.events[5].record_key == 'R1 - Plaza Central (outbound #1)'

    def test_infrastructure_failure_is_fatal(self, sink):
        @contextmanager
        def broken_scope():
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))
            yield

        reconciler = ImportReconciler(session_scope=broken_scope, sink=sink, show_progress=False)

        with pytest.raises(OperationalError):
            reconciler.import_stops(STOPS)
        assert sink.events == []

    def test_clear(self, reconciler):
        reconciler.run_all(STOPS, ROUTES, LINKS)

        deleted = reconciler.clear()

        assert deleted == {'route_stops': 4, 'routes': 2, 'stops': 3}
        assert _counts() == (0, 0, 0)

    def test_clear_on_empty_store(self, reconciler):
        assert reconciler.clear() == {'route_stops': 0, 'routes': 0, 'stops': 0}


class TestLoggingSink:

    def test_outcomes_logged_with_key(self):
        with patch('busnet.ingest.sinks.logger') as log:
            sink = LoggingSink()
            sink.record('stops', 'Mercado', CREATED)
            sink.record('stops', 'Mercado', SKIPPED)
            sink.record('route-stops', 'R1 - Nowhere', ERROR, 'Referenced stop not found: Nowhere')

        assert log.info.call_count == 2
        assert 'Mercado' in log.info.call_args_list[0].args[0]
        log.warning.assert_called_once()
        assert 'R1 - Nowhere' in log.warning.call_args.args[0]
