"""SQL-backed implementations of the rule engine's collaborators."""
