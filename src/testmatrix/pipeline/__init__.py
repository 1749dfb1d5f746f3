"""Ingestion pipeline entry points."""

from .ingestion import ingest_run, ingest_run_file, load_snapshot, resolve_store

__all__ = ["ingest_run", "ingest_run_file", "load_snapshot", "resolve_store"]
