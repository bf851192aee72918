"""Store adapters: DynamoDB (key-value) and Supabase PostgREST (relational)."""

from .account_store import SupabaseAccountStore
from .dynamodb_store import DynamoDBAccountStore, create_dynamodb_client
from .errors import (
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNotFoundError,
)
from .job_repo import SupabaseLifecycleJobRepository
from .supabase_client import SupabaseClient, create_http_pool

__all__ = [
    "DynamoDBAccountStore",
    "SupabaseAccountStore",
    "SupabaseAuthError",
    "SupabaseClient",
    "SupabaseConflictError",
    "SupabaseError",
    "SupabaseLifecycleJobRepository",
    "SupabaseNotFoundError",
    "create_dynamodb_client",
    "create_http_pool",
]
