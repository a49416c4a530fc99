"""Configuration for ingestion runs."""

from .ingest_config import DestinationConfig, IngestConfig, get_config

__all__ = ["DestinationConfig", "IngestConfig", "get_config"]
