"""
Core application utilities for settings, errors, logging and FastAPI dependencies.

This package provides:
- Application-level settings (separate from DB settings)
- Typed workflow errors shared by the engine, services and HTTP layer
- Logging with correlation/tenant/actor context
- Dependency helpers (tenant and actor extraction, workflow service wiring)
"""
