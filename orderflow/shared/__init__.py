"""
Shared utilities package.

This module contains cross-cutting concerns used by both the Core Domain
and Infrastructure Adapters, including:
- Configuration management
- Structured logging
- Distributed tracing (Observability)
- Resilience patterns (Circuit Breakers, retries)
- Single-flight caching
- Dependency Injection wiring
"""
