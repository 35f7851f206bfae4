"""SQLite persistence: handler, ops mixins, repositories and the store session."""
