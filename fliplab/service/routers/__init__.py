"""API routers for the search service."""
