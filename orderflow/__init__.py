"""
Orderflow - food order fulfillment pipeline.

This package contains the Modular Monolith implementation following
Hexagonal Architecture (Ports & Adapters).
"""

__version__ = "1.0.0"
