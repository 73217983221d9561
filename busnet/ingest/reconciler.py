"""
Import reconciler for batch network data.

Merges external batch records into the entity store in three stages:

1. Stops (keyed by name)
2. Routes (keyed by code)
3. Route stops (resolved through route code and stop name)

Each stage is idempotent: records whose natural key already exists are
skipped, so a stage can be re-run on the same file. Every record runs in its
own session scope; a record that fails validation, collides with an existing
row or references something unknown is counted as an error and the stage
moves on. Anything that is not a domain error (database unreachable, bugs)
propagates and ends the run.
"""

import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Callable, ContextManager, Dict, Iterable, List, Optional

from pydantic import BaseModel, ValidationError as RecordShapeError
from sqlalchemy.orm import Session
from tqdm import tqdm

from busnet.config.config_main import import_config
from busnet.data.db_broker import ConnectionBroker
from busnet.data.entity_store import EntityStore
from busnet.data.errors import ReferenceNotFoundError, TopologyError
from .records import StopRecord, RouteRecord, RouteStopRecord, raw_record_key
from .sinks import ImportSink, LoggingSink, CREATED, SKIPPED, ERROR

logger = logging.getLogger(__name__)

STAGE_STOPS = 'stops'
STAGE_ROUTES = 'routes'
STAGE_ROUTE_STOPS = 'route-stops'


@dataclass
class StageResult:
    created: int = 0
    skipped: int = 0
    errors: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class ImportReport:
    stops: StageResult = field(default_factory=StageResult)
    routes: StageResult = field(default_factory=StageResult)
    route_stops: StageResult = field(default_factory=StageResult)

    def as_dict(self) -> Dict[str, Dict[str, int]]:
        return {
            STAGE_STOPS: self.stops.as_dict(),
            STAGE_ROUTES: self.routes.as_dict(),
            STAGE_ROUTE_STOPS: self.route_stops.as_dict(),
        }


class ImportReconciler:
    """Runs the stop, route and route stop import stages."""

    def __init__(self,
                 session_scope: Callable[[], ContextManager[Session]] = None,
                 sink: ImportSink = None,
                 show_progress: bool = None):
        """
        Args:
            session_scope: Factory for a transactional session context
                (commit on success, rollback on error). One scope per record.
            sink: Receives a (stage, record_key, outcome) event per record
            show_progress: Show tqdm progress bars (default from IMPORT_SHOW_PROGRESS)
        """
        self.session_scope = session_scope or ConnectionBroker.get_session
        self.sink = sink or LoggingSink()
        self.show_progress = import_config.show_progress if show_progress is None else show_progress

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def import_stops(self, records: Iterable[Dict[str, Any]]) -> StageResult:
        """Create stops whose name is not yet in the store."""
        def handle(store: EntityStore, record: StopRecord) -> str:
            if store.find_stop_by_name(record.name) is not None:
                return SKIPPED
            store.create_stop(
                name=record.name,
                latitude=record.latitude,
                longitude=record.longitude,
                address=record.address,
                landmarks=record.landmarks,
                description=record.description
            )
            return CREATED

        return self._run_stage(STAGE_STOPS, records, StopRecord, ('name',), handle)

    def import_routes(self, records: Iterable[Dict[str, Any]]) -> StageResult:
        """Create routes whose code is not yet in the store."""
        def handle(store: EntityStore, record: RouteRecord) -> str:
            if store.find_route_by_code(record.code) is not None:
                return SKIPPED
            hours = record.operating_hours
            store.create_route(
                name=record.name,
                code=record.code,
                color=record.color,
                operating_hours=hours.model_dump(exclude_none=True) if hours is not None else None,
                fare_price=record.fare_price,
                description=record.description
            )
            return CREATED

        return self._run_stage(STAGE_ROUTES, records, RouteRecord, ('code', 'name'), handle)

    def import_route_stops(self, records: Iterable[Dict[str, Any]]) -> StageResult:
        """Link stops to routes, resolving both sides by natural key."""
        def handle(store: EntityStore, record: RouteStopRecord) -> str:
            route = store.find_route_by_code(record.route_code)
            if route is None:
                raise ReferenceNotFoundError('route', record.route_code)
            stop = store.find_stop_by_name(record.stop_name)
            if stop is None:
                raise ReferenceNotFoundError('stop', record.stop_name)

            existing = store.find_route_stop(
                route.id, stop.id, record.direction, record.stop_order
            )
            if existing is not None:
                return SKIPPED

            store.create_route_stop(
                route_id=route.id,
                stop_id=stop.id,
                stop_order=record.stop_order,
                direction=record.direction,
                distance_from_previous=record.distance_from_previous,
                average_arrival_time=record.average_arrival_time
            )
            return CREATED

        return self._run_stage(
            STAGE_ROUTE_STOPS, records, RouteStopRecord, ('routeCode', 'stopName'), handle
        )

    def run_all(self, stops: Iterable[Dict[str, Any]],
                routes: Iterable[Dict[str, Any]],
                route_stops: Iterable[Dict[str, Any]]) -> ImportReport:
        """Run stops, routes and route stops in dependency order."""
        report = ImportReport()
        report.stops = self.import_stops(stops)
        report.routes = self.import_routes(routes)
        report.route_stops = self.import_route_stops(route_stops)
        return report

    def clear(self) -> Dict[str, int]:
        """Delete all route stops, routes and stops (children first). Irreversible."""
        logger.warning("Clearing all network data")
        with self.session_scope() as session:
            deleted = EntityStore(session).clear_all()
        logger.info(
            f"Cleared {deleted['route_stops']} route stops, {deleted['routes']} routes, "
            f"{deleted['stops']} stops"
        )
        return deleted

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run_stage(self, stage: str, records: Iterable[Dict[str, Any]],
                   record_type: type, key_fields: tuple,
                   handle: Callable[[EntityStore, BaseModel], str]) -> StageResult:
        records = list(records)
        result = StageResult()
        start_time = datetime.now()
        logger.info(f"Starting {stage} import ({len(records)} records)")

        for raw in tqdm(records, desc=f"Importing {stage}", unit="record",
                        leave=False, disable=not self.show_progress):
            outcome, key, detail = self._process_record(raw, record_type, key_fields, handle)

            if outcome == CREATED:
                result.created += 1
            elif outcome == SKIPPED:
                result.skipped += 1
            else:
                result.errors += 1
            self.sink.record(stage, key, outcome, detail)

        duration = (datetime.now() - start_time).total_seconds()
        logger.info(
            f"{stage} import complete: {result.created} created, {result.skipped} skipped, "
            f"{result.errors} errors ({duration:.2f}s)"
        )
        return result

    def _process_record(self, raw: Any, record_type: type, key_fields: tuple,
                        handle: Callable[[EntityStore, BaseModel], str]):
        key = raw_record_key(raw, *key_fields)
        try:
            record = record_type.model_validate(raw)
        except RecordShapeError as exc:
            return ERROR, key, f"invalid record: {exc.error_count()} field error(s): {_first_error(exc)}"

        key = record.key
        try:
            with self.session_scope() as session:
                outcome = handle(EntityStore(session), record)
        except TopologyError as exc:
            return ERROR, key, str(exc)

        return outcome, key, None


def _first_error(exc: RecordShapeError) -> Optional[str]:
    errors: List[dict] = exc.errors()
    if not errors:
        return None
    first = errors[0]
    location = '.'.join(str(part) for part in first.get('loc', ()))
    return f"{location}: {first.get('msg')}"
