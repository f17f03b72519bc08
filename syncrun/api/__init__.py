"""
API routers for the sync run service.
"""

from syncrun.api.sync_run import router as sync_run_router

__all__ = ["sync_run_router"]
