"""Metadata snapshots and the workspace version counter."""

from schemaforge.cache.snapshot import MetadataSnapshot, SnapshotCache
from schemaforge.cache.version import VersionManager

__all__ = ["MetadataSnapshot", "SnapshotCache", "VersionManager"]
