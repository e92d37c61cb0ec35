"""HTTP API for the task rewards backend."""
