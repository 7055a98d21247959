"""API routers for the Env Data API."""
