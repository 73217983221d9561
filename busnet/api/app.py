"""
Bus Network REST API
A lightweight Flask app exposing stops, routes and network analytics
"""

import logging
from datetime import datetime, timezone

from flask import Flask, jsonify, request
from flask_cors import CORS
from pydantic import ValidationError as RequestShapeError
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

from busnet.config.config_main import api_config
from busnet.data.db_broker import ConnectionBroker
from busnet.data.entity_store import EntityStore
from busnet.data.errors import (
    AlreadyExistsError, NotFoundError, ReferenceNotFoundError, ValidationError
)
from busnet.data.topology import TopologyQueryEngine
from busnet.data.models import DIRECTIONS

from .schemas import StopCreateRequest, RouteCreateRequest, RouteStopCreateRequest

logger = logging.getLogger(__name__)


# ============================================================================
# SERIALIZATION
# ============================================================================

def _timestamp(value):
    return value.isoformat() if value else None


def stop_to_dict(stop):
    return {
        'id': stop.id,
        'name': stop.name,
        'description': stop.description,
        'latitude': stop.latitude,
        'longitude': stop.longitude,
        'address': stop.address,
        'landmarks': stop.landmarks,
        'status': stop.status,
        'createdAt': _timestamp(stop.created_at),
        'updatedAt': _timestamp(stop.updated_at),
    }


def route_to_dict(route):
    return {
        'id': route.id,
        'name': route.name,
        'code': route.code,
        'color': route.color,
        'description': route.description,
        'operatingHours': route.operating_hours,
        'farePrice': route.fare_price,
        'status': route.status,
        'createdAt': _timestamp(route.created_at),
        'updatedAt': _timestamp(route.updated_at),
    }


def route_stop_to_dict(route_stop):
    return {
        'id': route_stop.id,
        'routeId': route_stop.route_id,
        'stopId': route_stop.stop_id,
        'stopOrder': route_stop.stop_order,
        'direction': route_stop.direction,
        'averageArrivalTime': route_stop.average_arrival_time,
        'distanceFromPrevious': route_stop.distance_from_previous,
        'createdAt': _timestamp(route_stop.created_at),
    }


def _route_brief(route):
    return {'id': route.id, 'name': route.name, 'code': route.code, 'color': route.color}


def _request_body():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _shape_error_message(exc: RequestShapeError) -> str:
    first = exc.errors()[0]
    location = '.'.join(str(part) for part in first.get('loc', ()))
    return f"{location}: {first.get('msg')}" if location else first.get('msg')


# ============================================================================
# APPLICATION
# ============================================================================

def create_app():
    app = Flask(__name__)
    CORS(app)

    register_error_handlers(app)

    @app.route('/api/stops', methods=['GET'])
    def list_stops():
        """All stops with the routes that serve them"""
        with ConnectionBroker.get_session() as session:
            stops = EntityStore(session).list_stops()
            routes_by_stop = TopologyQueryEngine(session).routes_by_stop()

            result = []
            for stop in stops:
                routes = routes_by_stop.get(stop.id, [])
                result.append({
                    **stop_to_dict(stop),
                    'routes': [_route_brief(route) for route in routes],
                    'routeCount': len(routes),
                })
            return jsonify(result)

    @app.route('/api/stops/<int:stop_id>', methods=['GET'])
    def get_stop(stop_id):
        """Single stop with its position on every route"""
        with ConnectionBroker.get_session() as session:
            stop = EntityStore(session).get_stop(stop_id)
            memberships = TopologyQueryEngine(session).stop_memberships(stop_id)

            return jsonify({
                **stop_to_dict(stop),
                'routes': [
                    {
                        **_route_brief(m.route),
                        'description': m.route.description,
                        'stopOrder': m.stop_order,
                        'direction': m.direction,
                        'averageArrivalTime': m.average_arrival_time,
                        'distanceFromPrevious': m.distance_from_previous,
                    }
                    for m in memberships
                ],
                'routeCount': len({m.route.id for m in memberships}),
            })

    @app.route('/api/stops', methods=['POST'])
    def create_stop():
        payload = StopCreateRequest.model_validate(_request_body())
        with ConnectionBroker.get_session() as session:
            stop = EntityStore(session).create_stop(
                name=payload.name,
                latitude=payload.latitude,
                longitude=payload.longitude,
                address=payload.address,
                landmarks=payload.landmarks,
                description=payload.description
            )
            session.flush()
            session.refresh(stop)
            return jsonify(stop_to_dict(stop)), 201

    @app.route('/api/routes', methods=['GET'])
    def list_routes():
        """All routes ordered by name, with their stop counts"""
        with ConnectionBroker.get_session() as session:
            routes = EntityStore(session).list_routes()
            stop_counts = TopologyQueryEngine(session).total_stops_by_route()

            return jsonify([
                {**route_to_dict(route), 'totalStops': stop_counts.get(route.id, 0)}
                for route in routes
            ])

    @app.route('/api/routes/<int:route_id>', methods=['GET'])
    def get_route(route_id):
        """Single route with ordered stops for each direction"""
        with ConnectionBroker.get_session() as session:
            route = EntityStore(session).get_route(route_id)
            engine = TopologyQueryEngine(session)

            summary = engine.route_summary(route_id)

            sequences = {}
            for direction in DIRECTIONS:
                views = engine.route_stops(route_id, direction)
                sequences[direction] = [
                    {
                        **stop_to_dict(view.stop),
                        'stopOrder': view.stop_order,
                        'averageArrivalTime': view.average_arrival_time,
                        'distanceFromPrevious': view.distance_from_previous,
                    }
                    for view in views
                ]

            return jsonify({
                **route_to_dict(route),
                'outboundStops': sequences['outbound'],
                'inboundStops': sequences['inbound'],
                'totalStops': summary.total_stops,
                'totalDistance': summary.per_direction_distance,
            })

    @app.route('/api/routes', methods=['POST'])
    def create_route():
        payload = RouteCreateRequest.model_validate(_request_body())
        hours = payload.operating_hours
        with ConnectionBroker.get_session() as session:
            route = EntityStore(session).create_route(
                name=payload.name,
                code=payload.code,
                color=payload.color,
                operating_hours=hours.model_dump(exclude_none=True) if hours is not None else None,
                fare_price=payload.fare_price,
                description=payload.description
            )
            session.flush()
            session.refresh(route)
            return jsonify(route_to_dict(route)), 201

    @app.route('/api/routes/<int:route_id>/stops', methods=['POST'])
    def add_stop_to_route(route_id):
        """Link a stop into a route; checks and insert share one transaction"""
        payload = RouteStopCreateRequest.model_validate(_request_body())
        with ConnectionBroker.get_session() as session:
            route_stop = EntityStore(session).create_route_stop(
                route_id=route_id,
                stop_id=payload.stop_id,
                stop_order=payload.stop_order,
                direction=payload.direction,
                distance_from_previous=payload.distance_from_previous,
                average_arrival_time=payload.average_arrival_time
            )
            session.flush()
            session.refresh(route_stop)
            return jsonify(route_stop_to_dict(route_stop)), 201

    @app.route('/api/analytics/system-overview', methods=['GET'])
    def system_overview():
        with ConnectionBroker.get_session() as session:
            overview = TopologyQueryEngine(session).system_overview()
            return jsonify({
                'totalActiveStops': overview.total_active_stops,
                'totalActiveRoutes': overview.total_active_routes,
                'avgRoutesPerStop': overview.avg_routes_per_stop,
                'totalNetworkDistance': overview.total_network_distance,
            })

    @app.route('/api/health')
    def health_check():
        """Health check endpoint"""
        try:
            with ConnectionBroker.get_session() as session:
                session.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return jsonify({
                'status': 'unhealthy',
                'error': str(e)
            }), 500

        return jsonify({
            'status': 'ok',
            'message': 'Bus Tracker API is running',
            'timestamp': datetime.now(timezone.utc).isoformat()
        })

    return app


def register_error_handlers(app):
    """Translate domain errors into HTTP responses."""

    @app.errorhandler(RequestShapeError)
    def handle_request_shape(e):
        return jsonify({'error': _shape_error_message(e)}), 400

    @app.errorhandler(ValidationError)
    @app.errorhandler(AlreadyExistsError)
    @app.errorhandler(ReferenceNotFoundError)
    def handle_bad_request(e):
        return jsonify({'error': str(e)}), 400

    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        return jsonify({'error': str(e)}), 404

    @app.errorhandler(HTTPException)
    def handle_http(e):
        message = 'Route not found' if e.code == 404 else e.description
        return jsonify({'error': message}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        logger.exception(f"Unhandled error on {request.method} {request.path}")
        return jsonify({'error': 'Something went wrong!', 'message': 'Internal server error'}), 500


app = create_app()


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    ConnectionBroker.create_tables()
    app.run(debug=api_config.debug, host=api_config.host, port=api_config.port)
