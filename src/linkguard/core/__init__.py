"""
Core business logic components.

This package contains the request and data protection layer:
- Sliding window rate limiting and the IP block list
- Double-submit CSRF protection and session storage
- Sealing of PII at rest and the anonymization sweep
- Background sweeps, health checks and metrics collection
"""
