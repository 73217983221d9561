"""Destinations for per-record import outcomes."""

import logging
from typing import List, NamedTuple, Optional

logger = logging.getLogger(__name__)

CREATED = 'created'
SKIPPED = 'skipped'
ERROR = 'error'


class ImportEvent(NamedTuple):
    stage: str
    record_key: str
    outcome: str
    detail: Optional[str] = None


class ImportSink:
    """Receives one event per processed record."""

    def record(self, stage: str, record_key: str, outcome: str, detail: str = None):
        raise NotImplementedError


class LoggingSink(ImportSink):
    """Writes outcomes to the import logger."""

    def __init__(self, log: logging.Logger = None):
        self.log = log or logger

    def record(self, stage: str, record_key: str, outcome: str, detail: str = None):
        if outcome == CREATED:
            self.log.info(f"[{stage}] Created: {record_key}")
        elif outcome == SKIPPED:
            self.log.info(f"[{stage}] Skipped (exists): {record_key}")
        else:
            self.log.warning(f"[{stage}] Error: {record_key}: {detail}")


class RecordingSink(ImportSink):
    """Keeps events in memory."""

    def __init__(self):
        self.events: List[ImportEvent] = []

    def record(self, stage: str, record_key: str, outcome: str, detail: str = None):
        self.events.append(ImportEvent(stage, record_key, outcome, detail))

    def outcomes(self, stage: str = None) -> List[str]:
        return [e.outcome for e in self.events if stage is None or e.stage == stage]
