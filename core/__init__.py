"""
Core utilities and configuration for the table import engine.

This package provides foundational components used throughout the importer:

Modules:
    config: Application configuration and environment variable management
    database: Source/destination engines and session factories
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration (worker stamp, validation log)

Usage:
    from core.config import settings
    from core.database import source_session_maker, destination_session_maker
    from core.exceptions import ConfigurationError, DatabaseError
    from core.logging import setup_logging

Example:
    # Initialize logging
    setup_logging()

    # Get a destination session
    async with destination_session_maker()() as session:
        # Perform database operations
        pass
"""

__all__ = [
    "settings",
    "source_session_maker",
    "destination_session_maker",
    "setup_logging",
    # Exceptions
    "ETLException",
    "ConfigurationError",
    "UnknownCallbackError",
    "TransformationError",
    "ScrubError",
    "UnknownColumnError",
    "LoadError",
    "DatabaseError",
    "ImportAbortedError",
]
