"""Live bus position ingestion and arrival prediction."""

__version__ = "1.0.0"
