"""SchemaForge: workspace object metadata and the schema migrations it implies."""

__version__ = "0.1.0"
