"""
API Routes Package

This package contains route handlers organized by feature:
- recognition.py: POST /register and POST /recognize
- management.py: REST endpoints for user management
"""

from api.routes.recognition import router as recognition_router
from api.routes.management import router as management_router

__all__ = [
    "recognition_router",
    "management_router",
]
