"""Core types: exception taxonomy, failure classification and localized messages."""
