"""Service implementations (external stores)."""
