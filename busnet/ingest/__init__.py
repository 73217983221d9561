"""
Bus Network Batch Import Module

Loads stops, routes and route stops from JSON batch files into the database.

Entry Point:
    python -m busnet.ingest all

Components:
    - records: Batch record shapes and JSON file loading
    - reconciler: Idempotent three-stage import (stops, routes, route stops)
    - sinks: Per-record outcome reporting
    - schema: Atomic database initialization
    - orchestrator: Command line entry point
"""

from .schema import initialize_database, Base
from .reconciler import ImportReconciler, StageResult, ImportReport

__all__ = ['initialize_database', 'Base', 'ImportReconciler', 'StageResult', 'ImportReport']
