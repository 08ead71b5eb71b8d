"""
LinkGuard - WhatsApp link generator with a protected admin dashboard

A FastAPI service that builds wa.me links, seals the submitted PII at
rest, rate-limits and blocks abusive IPs, and anonymizes aged records.
"""

__version__ = "0.1.0"

from .main import app

__all__ = ["app"]
