"""
API v1 package.

Contains versioned API routes for the marketplace identity service.
"""

from marketplace_identity.api.v1.routes import router

__all__ = ["router"]
