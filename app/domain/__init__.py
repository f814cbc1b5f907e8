"""
Domain layer containing core business logic and domain services.

Submodules:
- live: Relay stream supervision (process lifecycle, readiness, audit trail).
- utils: Domain-specific utilities (e.g., ID generation).
"""
