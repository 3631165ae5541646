"""Session health shared package.

This package contains components shared by the session health service:
- models: Pydantic data models and the session state union
- database: SQLAlchemy ORM models
- redis_client: Redis client wrapper
- config: Configuration management
- observability: Structured logging
- clock: Injectable time source
"""

__version__ = "0.1.0"
