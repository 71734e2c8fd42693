"""
Statement Kernel

Shared foundation for the statement computation engine:
- Structured JSON logging with request-scoped context
- Typed exception hierarchy with machine-readable codes
- Request-local DTOs and collaborator protocols
- Read-only SQLAlchemy access to event and reference data
"""

__version__ = "0.1.0"
