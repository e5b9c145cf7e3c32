"""Adapters binding the engine ports to files, HTTP services and SQLAlchemy."""
