"""
API Routes

- jobs: resume generation job submission and polling
"""

from .jobs import router as jobs_router, get_current_user_id

__all__ = ["jobs_router", "get_current_user_id"]
