"""Service implementations."""
