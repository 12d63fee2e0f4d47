"""Core field types and naming rules."""
