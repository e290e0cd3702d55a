"""Application services for the tab API."""
