"""Metadata mutation service and the collaborators it notifies."""

from schemaforge.services.object_metadata import ObjectMetadataService

__all__ = ["ObjectMetadataService"]
