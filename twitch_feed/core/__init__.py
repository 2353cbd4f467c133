"""Core infrastructure: configuration, logging, errors, database and DI."""
