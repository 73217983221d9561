"""
Entity store for the bus network topology.

Owns creation of stops, routes and route stops and enforces the structural
rules at the point of mutation:

- stop names and route codes are unique (they are the natural keys used by
  the batch importer)
- a route stop can only be created when its route and stop exist
- within one (route, direction) every stop_order is used at most once

All work happens inside the session handed to the store; committing or
rolling back is the caller's job (see ConnectionBroker.get_session).
"""

import logging
import math
import re
from numbers import Real
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import (
    AlreadyExistsError, NotFoundError, ReferenceNotFoundError, ValidationError
)
from .models import (
    Stop, Route, RouteStop, STOP_STATUSES, ROUTE_STATUSES, DIRECTIONS,
    DEFAULT_ROUTE_COLOR
)

logger = logging.getLogger(__name__)

COLOR_PATTERN = re.compile(r'^#[0-9A-Fa-f]{6}$')
TIME_PATTERN = re.compile(r'^([01]?[0-9]|2[0-3]):[0-5][0-9]$')
MAX_FARE_PRICE = 999.99

# Column widths from models.py
MAX_NAME_LENGTH = 255
MAX_ADDRESS_LENGTH = 255
MAX_CODE_LENGTH = 50

# Children first, so deleting in this order never strands a reference
DELETE_ORDER = ('route_stops', 'routes', 'stops')
KIND_MODELS = {
    'route_stops': RouteStop,
    'routes': Route,
    'stops': Stop,
}


def _is_number(value) -> bool:
    """Finite real number; bools, NaN and infinities are rejected."""
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def _is_integer(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_coordinates(latitude, longitude):
    if not _is_number(latitude) or not -90 <= latitude <= 90:
        raise ValidationError(f"latitude must be a number between -90 and 90, got {latitude!r}")
    if not _is_number(longitude) or not -180 <= longitude <= 180:
        raise ValidationError(f"longitude must be a number between -180 and 180, got {longitude!r}")


def validate_color(color: str):
    if not isinstance(color, str) or not COLOR_PATTERN.match(color):
        raise ValidationError(f"color must look like '#1a2b3c', got {color!r}")


def validate_operating_hours(hours: dict):
    if not isinstance(hours, dict):
        raise ValidationError("operatingHours must be an object")

    unknown = set(hours) - {'start', 'end', 'days'}
    if unknown:
        raise ValidationError(f"operatingHours has unknown fields: {', '.join(sorted(unknown))}")

    for field in ('start', 'end'):
        value = hours.get(field)
        if value is not None and (not isinstance(value, str) or not TIME_PATTERN.match(value)):
            raise ValidationError(f"operatingHours.{field} must be HH:MM, got {value!r}")

    days = hours.get('days')
    if days is not None:
        if not isinstance(days, list) or not all(isinstance(day, str) for day in days):
            raise ValidationError("operatingHours.days must be a list of strings")


def validate_fare_price(fare_price):
    if not _is_number(fare_price) or not 0 <= fare_price <= MAX_FARE_PRICE:
        raise ValidationError(f"farePrice must be between 0 and {MAX_FARE_PRICE}, got {fare_price!r}")


def _require_text(field: str, value, max_length: int = None):
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    _check_length(field, value, max_length)


def _check_length(field: str, value, max_length: int = None):
    if value is None or max_length is None:
        return
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    if len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters, got {len(value)}")


class EntityStore:
    """Creates and looks up network entities within one session."""

    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------
    # Stops
    # ------------------------------------------------------------------

    def create_stop(self, name: str, latitude: float, longitude: float,
                    address: str = None, landmarks: str = None,
                    description: str = None, status: str = 'active') -> Stop:
        """
        Create a stop.

        Raises:
            ValidationError: coordinates out of range, blank or over-long name/address, unknown status
            AlreadyExistsError: a stop with this name exists
        """
        _require_text('name', name, MAX_NAME_LENGTH)
        _check_length('address', address, MAX_ADDRESS_LENGTH)
        validate_coordinates(latitude, longitude)
        if status not in STOP_STATUSES:
            raise ValidationError(f"stop status must be one of {', '.join(STOP_STATUSES)}")

        if self.find_stop_by_name(name) is not None:
            raise AlreadyExistsError('stop', name)

        stop = Stop(
            name=name,
            description=description,
            latitude=float(latitude),
            longitude=float(longitude),
            address=address,
            landmarks=landmarks,
            status=status
        )
        self._insert(stop, 'stop', name)
        logger.debug(f"Created stop {stop.id} ({name})")
        return stop

    def get_stop(self, stop_id: int) -> Stop:
        stop = self.session.get(Stop, stop_id)
        if stop is None:
            raise NotFoundError('stop', stop_id)
        return stop

    def find_stop_by_name(self, name: str) -> Optional[Stop]:
        return self.session.query(Stop).filter_by(name=name).first()

    def list_stops(self) -> List[Stop]:
        return self.session.query(Stop).order_by(Stop.id).all()

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    def create_route(self, name: str, code: str, color: str = None,
                     operating_hours: dict = None, fare_price: float = None,
                     description: str = None, status: str = 'active') -> Route:
        """
        Create a route.

        Raises:
            ValidationError: malformed color, hours, price or status
            AlreadyExistsError: a route with this code exists
        """
        _require_text('name', name, MAX_NAME_LENGTH)
        _require_text('code', code, MAX_CODE_LENGTH)
        if color is None:
            color = DEFAULT_ROUTE_COLOR
        validate_color(color)
        if operating_hours is not None:
            validate_operating_hours(operating_hours)
        if fare_price is not None:
            validate_fare_price(fare_price)
        if status not in ROUTE_STATUSES:
            raise ValidationError(f"route status must be one of {', '.join(ROUTE_STATUSES)}")

        if self.find_route_by_code(code) is not None:
            raise AlreadyExistsError('route', code)

        route = Route(
            name=name,
            code=code,
            color=color,
            description=description,
            operating_hours=operating_hours,
            fare_price=float(fare_price) if fare_price is not None else None,
            status=status
        )
        self._insert(route, 'route', code)
        logger.debug(f"Created route {route.id} ({code})")
        return route

    def get_route(self, route_id: int) -> Route:
        route = self.session.get(Route, route_id)
        if route is None:
            raise NotFoundError('route', route_id)
        return route

    def find_route_by_code(self, code: str) -> Optional[Route]:
        return self.session.query(Route).filter_by(code=code).first()

    def list_routes(self) -> List[Route]:
        return self.session.query(Route).order_by(Route.name, Route.id).all()

    # ------------------------------------------------------------------
    # Route stops
    # ------------------------------------------------------------------

    def create_route_stop(self, route_id: int, stop_id: int, stop_order: int,
                          direction: str, distance_from_previous: float = None,
                          average_arrival_time: int = None) -> RouteStop:
        """
        Link a stop into one direction of a route.

        The route row is locked before the checks, so the existence checks and
        the insert form one unit inside the caller's transaction.

        Raises:
            ValidationError: bad order, direction, distance or arrival time
            ReferenceNotFoundError: route or stop does not exist
            AlreadyExistsError: (route, direction, stop_order) is taken
        """
        if not _is_integer(stop_order) or stop_order < 1:
            raise ValidationError(f"stopOrder must be an integer >= 1, got {stop_order!r}")
        if direction not in DIRECTIONS:
            raise ValidationError(f"direction must be one of {', '.join(DIRECTIONS)}, got {direction!r}")
        if distance_from_previous is not None and (
                not _is_number(distance_from_previous) or distance_from_previous < 0):
            raise ValidationError(
                f"distanceFromPrevious must be a non-negative number, got {distance_from_previous!r}"
            )
        if average_arrival_time is not None and (
                not _is_integer(average_arrival_time) or average_arrival_time < 0):
            raise ValidationError(
                f"averageArrivalTime must be a non-negative integer, got {average_arrival_time!r}"
            )

        route = self.session.query(Route).filter(Route.id == route_id).with_for_update().first()
        if route is None:
            raise ReferenceNotFoundError('route', route_id)
        if self.session.get(Stop, stop_id) is None:
            raise ReferenceNotFoundError('stop', stop_id)

        slot_taken = self.session.query(RouteStop.id).filter_by(
            route_id=route_id,
            direction=direction,
            stop_order=stop_order
        ).first()
        if slot_taken is not None:
            raise AlreadyExistsError(
                'route stop', (route_id, direction, stop_order),
                f"Route {route_id} already has stop #{stop_order} in the {direction} direction"
            )

        route_stop = RouteStop(
            route_id=route_id,
            stop_id=stop_id,
            stop_order=stop_order,
            direction=direction,
            distance_from_previous=(
                float(distance_from_previous) if distance_from_previous is not None else None
            ),
            average_arrival_time=average_arrival_time
        )
        self._insert(route_stop, 'route stop', (route_id, direction, stop_order))
        logger.debug(f"Linked stop {stop_id} to route {route_id} ({direction} #{stop_order})")
        return route_stop

    def find_route_stop(self, route_id: int, stop_id: int, direction: str,
                        stop_order: int) -> Optional[RouteStop]:
        return self.session.query(RouteStop).filter_by(
            route_id=route_id,
            stop_id=stop_id,
            direction=direction,
            stop_order=stop_order
        ).first()

    # ------------------------------------------------------------------
    # Destructive reset
    # ------------------------------------------------------------------

    def delete_all(self, kind: str) -> int:
        """
        Delete every row of one kind.

        Parents cannot be deleted while route stops still reference them;
        use clear_all() or delete in DELETE_ORDER.
        """
        if kind not in KIND_MODELS:
            raise ValidationError(f"Unknown entity kind '{kind}', expected one of {', '.join(DELETE_ORDER)}")

        if kind != 'route_stops':
            remaining_links = self.session.query(RouteStop.id).count()
            if remaining_links:
                raise ValidationError(
                    f"Cannot delete {kind} while {remaining_links} route stops reference them"
                )

        deleted = self.session.query(KIND_MODELS[kind]).delete(synchronize_session=False)
        self.session.flush()
        self.session.expire_all()
        logger.info(f"Deleted {deleted} {kind}")
        return deleted

    def clear_all(self) -> Dict[str, int]:
        """Delete route stops, then routes, then stops."""
        return {kind: self.delete_all(kind) for kind in DELETE_ORDER}

    def _insert(self, entity, kind: str, key):
        self.session.add(entity)
        try:
            self.session.flush()  # Get the auto-generated id
        except IntegrityError as exc:
            raise _translate_integrity_error(exc, kind, key) from exc


# SQLSTATE codes reported by psycopg2
PG_FOREIGN_KEY_VIOLATION = '23503'
PG_CHECK_VIOLATION = '23514'


def _translate_integrity_error(exc: IntegrityError, kind: str, key):
    """Map a failed flush onto the domain error for the violated constraint."""
    cause = str(exc.orig)
    pgcode = getattr(exc.orig, 'pgcode', None)

    if pgcode == PG_FOREIGN_KEY_VIOLATION or 'FOREIGN KEY constraint failed' in cause:
        return ReferenceNotFoundError(
            kind, key, f"{kind} {key} references a missing row: {cause}"
        )
    if pgcode == PG_CHECK_VIOLATION or 'CHECK constraint failed' in cause:
        return ValidationError(f"{kind} {key} violates a check constraint: {cause}")
    return AlreadyExistsError(kind, key, f"{kind} already exists: {key} ({cause})")
