"""Migration planning and execution for workspace schemas."""
