"""
API Routes
"""
from backend.api.routes import auth, identity

__all__ = ["auth", "identity"]
