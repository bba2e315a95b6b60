"""Persistence layer: SQLAlchemy engine, session factory and models."""
