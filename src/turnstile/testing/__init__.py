"""Test utilities for turnstile applications.

    from turnstile.testing import TestClient
"""

from turnstile.testing.client import TestClient

__all__ = ["TestClient"]
