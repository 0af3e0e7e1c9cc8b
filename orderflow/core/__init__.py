"""
Core Domain Layer.

This package contains the business rules of the order pipeline.
It follows the Hexagonal Architecture (Ports & Adapters) pattern:
- No dependencies on frameworks (FastAPI) or infrastructure (SQL, S3, SMTP).
- Defines Interfaces (Ports) that the adapters layer must implement.
"""
