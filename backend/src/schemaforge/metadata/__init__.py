"""Object and field metadata: types, validation, catalog storage."""
