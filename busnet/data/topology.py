"""
Read-only queries over the network topology.

Assembles per-route directional stop sequences and computes the derived
aggregates (distances, routes per stop, network summary). Nothing here
writes to the session.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from .errors import NotFoundError
from .models import Stop, Route, RouteStop, DIRECTIONS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteStopView:
    """One stop in a route direction's ordered sequence."""
    stop: Stop
    stop_order: int
    direction: str
    distance_from_previous: Optional[float]
    average_arrival_time: Optional[int]


@dataclass(frozen=True)
class StopMembership:
    """A route serving a stop, with that stop's position on it."""
    route: Route
    stop_order: int
    direction: str
    distance_from_previous: Optional[float]
    average_arrival_time: Optional[int]


@dataclass(frozen=True)
class RouteSummary:
    route_id: int
    total_stops: int
    per_direction_distance: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class SystemOverview:
    total_active_stops: int
    total_active_routes: int
    avg_routes_per_stop: float
    total_network_distance: float


class TopologyQueryEngine:
    """Derived views of whatever the entity store currently holds."""

    def __init__(self, session: Session):
        self.session = session

    def route_stops(self, route_id: int, direction: str) -> List[RouteStopView]:
        """Stops of one route direction, ascending by stop_order."""
        self._require_route(route_id)

        rows = (
            self.session.query(RouteStop, Stop)
            .join(Stop, RouteStop.stop_id == Stop.id)
            .filter(RouteStop.route_id == route_id, RouteStop.direction == direction)
            .order_by(RouteStop.stop_order)
            .all()
        )
        return [
            RouteStopView(
                stop=stop,
                stop_order=link.stop_order,
                direction=link.direction,
                distance_from_previous=link.distance_from_previous,
                average_arrival_time=link.average_arrival_time
            )
            for link, stop in rows
        ]

    def total_distance(self, route_id: int, direction: str) -> float:
        """Sum of distance_from_previous along one direction; missing distances count as 0."""
        return sum(
            view.distance_from_previous or 0.0
            for view in self.route_stops(route_id, direction)
        )

    def route_summary(self, route_id: int) -> RouteSummary:
        self._require_route(route_id)

        total_stops = (
            self.session.query(func.count(func.distinct(RouteStop.stop_id)))
            .filter(RouteStop.route_id == route_id)
            .scalar()
        )
        return RouteSummary(
            route_id=route_id,
            total_stops=total_stops or 0,
            per_direction_distance={
                direction: self.total_distance(route_id, direction)
                for direction in DIRECTIONS
            }
        )

    def stop_route_count(self, stop_id: int) -> int:
        """Number of distinct routes that pass through a stop."""
        if self.session.get(Stop, stop_id) is None:
            raise NotFoundError('stop', stop_id)

        count = (
            self.session.query(func.count(func.distinct(RouteStop.route_id)))
            .filter(RouteStop.stop_id == stop_id)
            .scalar()
        )
        return count or 0

    def system_overview(self) -> SystemOverview:
        """
        Network-wide summary.

        avg_routes_per_stop is taken over every stop, so stops no route
        serves pull the mean down. Real-valued fields are rounded to 2 places.
        """
        total_active_stops = self.session.query(func.count(Stop.id)).filter(
            Stop.status == 'active'
        ).scalar()
        total_active_routes = self.session.query(func.count(Route.id)).filter(
            Route.status == 'active'
        ).scalar()

        total_stops = self.session.query(func.count(Stop.id)).scalar() or 0
        # Sum over stops of their distinct route counts
        stop_route_pairs = (
            self.session.query(RouteStop.stop_id, RouteStop.route_id)
            .distinct()
            .count()
        )
        avg_routes_per_stop = stop_route_pairs / total_stops if total_stops else 0.0

        total_network_distance = self.session.query(
            func.coalesce(func.sum(RouteStop.distance_from_previous), 0.0)
        ).scalar()

        return SystemOverview(
            total_active_stops=total_active_stops or 0,
            total_active_routes=total_active_routes or 0,
            avg_routes_per_stop=round(avg_routes_per_stop, 2),
            total_network_distance=round(float(total_network_distance or 0.0), 2)
        )

    def route_count_by_stop(self) -> Dict[int, int]:
        """Distinct route count for every stop that has at least one link."""
        rows = (
            self.session.query(
                RouteStop.stop_id,
                func.count(func.distinct(RouteStop.route_id))
            )
            .group_by(RouteStop.stop_id)
            .all()
        )
        return {stop_id: count for stop_id, count in rows}

    def total_stops_by_route(self) -> Dict[int, int]:
        """Distinct stop count (both directions) for every route with links."""
        rows = (
            self.session.query(
                RouteStop.route_id,
                func.count(func.distinct(RouteStop.stop_id))
            )
            .group_by(RouteStop.route_id)
            .all()
        )
        return {route_id: count for route_id, count in rows}

    def routes_by_stop(self) -> Dict[int, List[Route]]:
        """Distinct routes serving each stop, ordered by route name."""
        pairs = self.session.query(RouteStop.stop_id, RouteStop.route_id).distinct().all()
        if not pairs:
            return {}

        route_ids = {route_id for _, route_id in pairs}
        route_map = {
            route.id: route
            for route in self.session.query(Route).filter(Route.id.in_(route_ids))
        }

        routes: Dict[int, List[Route]] = {}
        for stop_id, route_id in pairs:
            routes.setdefault(stop_id, []).append(route_map[route_id])
        for stop_routes in routes.values():
            stop_routes.sort(key=lambda route: (route.name, route.id))
        return routes

    def stop_memberships(self, stop_id: int) -> List[StopMembership]:
        """Every route link touching a stop."""
        if self.session.get(Stop, stop_id) is None:
            raise NotFoundError('stop', stop_id)

        rows = (
            self.session.query(RouteStop, Route)
            .join(Route, RouteStop.route_id == Route.id)
            .filter(RouteStop.stop_id == stop_id)
            .order_by(Route.name, RouteStop.direction.desc(), RouteStop.stop_order)
            .all()
        )
        return [
            StopMembership(
                route=route,
                stop_order=link.stop_order,
                direction=link.direction,
                distance_from_previous=link.distance_from_previous,
                average_arrival_time=link.average_arrival_time
            )
            for link, route in rows
        ]

    def _require_route(self, route_id: int) -> Route:
        route = self.session.get(Route, route_id)
        if route is None:
            raise NotFoundError('route', route_id)
        return route
