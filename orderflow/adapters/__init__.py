"""
Infrastructure Adapters.

This package contains the concrete implementations of the Ports defined in `orderflow.core.ports`:
- `api`: The Primary Adapter (Driving) - FastAPI web server and SSE endpoints.
- `persistence`: Secondary Adapter (Driven) - SQLAlchemy order and catalog stores.
- `storage`: Secondary Adapter (Driven) - S3 / in-memory image store behind the upload throttler.
- `mail`: Secondary Adapter (Driven) - SMTP decision notifications.
- `realtime`: Secondary Adapter (Driven) - In-process subscriber registries.

Dependencies point INWARD. These modules depend on `orderflow.core`,
but `orderflow.core` never imports from here.
"""
