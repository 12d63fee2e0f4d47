"""Persistence configuration and engine factory."""

from schemaforge.persistence.config import DatabaseConfig, ServiceSettings, create_engine_for

__all__ = ["DatabaseConfig", "ServiceSettings", "create_engine_for"]
