"""Version information for the Env Data API."""
__version__ = "1.0.0"
