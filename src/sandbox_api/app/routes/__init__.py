from .accounts import create_accounts_router
from .jobs import create_jobs_router

__all__ = ["create_accounts_router", "create_jobs_router"]
