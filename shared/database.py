"""
Database client.

Supabase PostgreSQL client with async execution, retries, and RPC support.
"""

import asyncio
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Optional, Any, Callable, Dict
from uuid import UUID
from pydantic import BaseModel
from supabase import create_client, Client
from shared.config import settings
from shared.errors import RetryableError, ConfigError
from shared.logging import get_logger

logger = get_logger("database")


def make_json_serializable(obj: Any) -> Any:
    """
    Recursively convert values to types PostgREST can encode.

    Handles:
    - UUID, Decimal -> str
    - datetime, date -> ISO format string
    - Enum -> its value
    - pydantic models -> JSON-mode dump
    - dict/list/tuple/set -> recursively processed

    Args:
        obj: Object to make JSON serializable

    Returns:
        JSON-serializable version of the object
    """
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    elif isinstance(obj, Enum):
        return obj.value
    elif isinstance(obj, (UUID, Decimal)):
        return str(obj)
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, dict):
        return {k: make_json_serializable(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple, set)):
        return [make_json_serializable(item) for item in obj]
    return obj


class DatabaseClient:
    """
    Supabase database client wrapper with retry logic.

    The underlying supabase client is synchronous; every call is pushed to the
    default executor so the worker's event loop keeps polling. One instance is
    created per process and handed to the stores that need it.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        service_key: Optional[str] = None,
        client: Optional[Client] = None
    ):
        """
        Initialize database client.

        Args:
            url: Supabase project URL (defaults to settings)
            service_key: Service role key (defaults to settings)
            client: Pre-built supabase client (tests)
        """
        if client is not None:
            self.client = client
            return
        try:
            self.client: Client = create_client(
                url or settings.supabase_url,
                service_key or settings.supabase_service_key
            )
        except Exception as e:
            raise ConfigError(f"Failed to initialize database client: {str(e)}") from e

    async def _execute_sync(self, func: Callable[[], Any], max_attempts: int = 3) -> Any:
        """
        Execute a synchronous Supabase operation in an async context.

        Args:
            func: Synchronous function to execute
            max_attempts: Maximum number of attempts

        Returns:
            Function result

        Raises:
            RetryableError: If operation fails after all attempts
        """
        loop = asyncio.get_running_loop()
        for attempt in range(max_attempts):
            try:
                return await loop.run_in_executor(None, func)
            except Exception as e:
                if attempt < max_attempts - 1:
                    # Exponential backoff: 2s, 4s, 8s
                    delay = 2 ** (attempt + 1)
                    logger.warning(
                        f"Database operation failed, retrying in {delay}s",
                        extra={"error": str(e), "attempt": attempt + 1}
                    )
                    await asyncio.sleep(delay)
                else:
                    raise RetryableError(
                        f"Database operation failed after {max_attempts} attempts: {str(e)}"
                    ) from e
        raise RetryableError("Database operation was not attempted")

    def table(self, table_name: str) -> "AsyncTableQueryBuilder":
        """
        Get a table query builder with async execution support.

        Args:
            table_name: Name of the table

        Returns:
            AsyncTableQueryBuilder wrapper
        """
        return AsyncTableQueryBuilder(self, table_name)

    async def rpc(self, function_name: str, params: Optional[Dict[str, Any]] = None, max_attempts: int = 3) -> Any:
        """
        Call a stored procedure.

        Stored procedures carry the atomic operations (credit reservation,
        job claim) so they run inside a single database transaction.

        Args:
            function_name: Postgres function name
            params: Named parameters
            max_attempts: Maximum number of attempts

        Returns:
            The procedure's return value (`response.data`)
        """
        payload = params or {}
        response = await self._execute_sync(
            lambda: self.client.rpc(function_name, payload).execute(),
            max_attempts
        )
        return response.data

    async def health_check(self) -> bool:
        """
        Check database connection health.

        Returns:
            True if connection is healthy, False otherwise
        """
        try:
            await self._execute_sync(
                lambda: self.client.table("jobs").select("id").limit(1).execute(),
                max_attempts=1
            )
            return True
        except RetryableError as e:
            logger.warning("Database health check failed", extra={"error": str(e)})
            return False


class AsyncTableQueryBuilder:
    """Async wrapper for Supabase table query builder."""

    def __init__(self, db_client: DatabaseClient, table_name: str):
        """Initialize async table query builder."""
        self.db_client = db_client
        self.table_name = table_name
        self._query_builder = db_client.client.table(table_name)

    def _chain(self, method: str, *args, **kwargs) -> "AsyncTableQueryBuilder":
        self._query_builder = getattr(self._query_builder, method)(*args, **kwargs)
        return self

    def select(self, *args, **kwargs):
        """Chain select operation."""
        return self._chain("select", *args, **kwargs)

    def insert(self, *args, **kwargs):
        """Chain insert operation."""
        return self._chain("insert", *args, **kwargs)

    def upsert(self, *args, **kwargs):
        """Chain upsert operation."""
        return self._chain("upsert", *args, **kwargs)

    def update(self, *args, **kwargs):
        """Chain update operation."""
        return self._chain("update", *args, **kwargs)

    def delete(self, *args, **kwargs):
        """Chain delete operation."""
        return self._chain("delete", *args, **kwargs)

    def eq(self, *args, **kwargs):
        """Chain eq filter."""
        return self._chain("eq", *args, **kwargs)

    def neq(self, *args, **kwargs):
        """Chain neq filter."""
        return self._chain("neq", *args, **kwargs)

    def gte(self, *args, **kwargs):
        """Chain gte (greater than or equal) filter."""
        return self._chain("gte", *args, **kwargs)

    def gt(self, *args, **kwargs):
        """Chain gt (greater than) filter."""
        return self._chain("gt", *args, **kwargs)

    def lte(self, *args, **kwargs):
        """Chain lte (less than or equal) filter."""
        return self._chain("lte", *args, **kwargs)

    def lt(self, *args, **kwargs):
        """Chain lt (less than) filter."""
        return self._chain("lt", *args, **kwargs)

    def in_(self, *args, **kwargs):
        """Chain in filter."""
        return self._chain("in_", *args, **kwargs)

    def is_(self, column: str, value: str):
        """Chain IS filter (value is "null", "true" or "false")."""
        return self._chain("is_", column, value)

    def not_is(self, column: str, value: str):
        """Chain IS NOT filter."""
        self._query_builder = self._query_builder.not_.is_(column, value)
        return self

    def limit(self, *args, **kwargs):
        """Chain limit operation."""
        return self._chain("limit", *args, **kwargs)

    def order(self, *args, **kwargs):
        """Chain order operation."""
        return self._chain("order", *args, **kwargs)

    def range(self, *args, **kwargs):
        """Chain range operation (for pagination: range(offset, offset + limit - 1))."""
        return self._chain("range", *args, **kwargs)

    def single(self):
        """Chain single operation (returns single result instead of array)."""
        return self._chain("single")

    async def execute(self, max_attempts: int = 3) -> Any:
        """
        Execute the query asynchronously.

        Args:
            max_attempts: Maximum number of attempts

        Returns:
            Query result (supabase APIResponse with `.data`)
        """
        query_builder = self._query_builder
        return await self.db_client._execute_sync(
            lambda: query_builder.execute(),
            max_attempts
        )
