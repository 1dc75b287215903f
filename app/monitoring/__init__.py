"""
Monitoring & Observability package

Includes:
- tracing: correlation IDs bound into the structlog context
"""
