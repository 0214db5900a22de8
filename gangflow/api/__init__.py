"""HTTP API for the gang workflow engine."""
