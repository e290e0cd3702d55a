"""Tab settlement REST API."""
