"""Data connections: the ``ConnectionProvider`` seam and its pymongo adapter.

The participant never talks to a driver directly. It lists databases and
collections, samples documents and asks which connection is active
through ``ConnectionProvider``; tests inject in-memory fakes.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Mapping
from typing import Annotated, Any, Protocol

from fastapi import Depends, FastAPI, Request
from pymongo import AsyncMongoClient

from mongochat.configs.config import get_connection_config
from mongochat.configs.system import ConnectionConfig
from mongochat.core.participant.errors import ConnectionUnavailableError
from mongochat.infra.cancellation import CancellationToken, run_cancellable
from mongochat.infra.lifespan import get_app

logger = logging.getLogger(__name__)

Document = dict[str, Any]


class ConnectionProvider(Protocol):
    """Narrow view of the data connection used by the participant."""

    def connection_names(self) -> list[str]:
        """Display names of every known connection."""
        ...

    def get_active_connection(self) -> str | None:
        """Display name of the active connection, ``None`` when disconnected."""
        ...

    async def connect(self, name: str) -> None:
        """Make *name* the active connection."""
        ...

    async def list_databases(
        self, token: CancellationToken | None = None
    ) -> list[str]: ...

    async def list_collections(
        self, database_name: str, token: CancellationToken | None = None
    ) -> list[str]: ...

    async def sample(
        self,
        database_name: str,
        collection_name: str,
        *,
        size: int,
        query: Mapping[str, Any] | None = None,
        token: CancellationToken | None = None,
    ) -> list[Document]: ...


class MongoConnectionProvider:
    """``ConnectionProvider`` over ``pymongo.AsyncMongoClient``.

    Connections are named URIs from ``ConnectionConfig``; one client is
    kept open for the active connection and replaced on ``connect``.
    """

    def __init__(self, config: ConnectionConfig) -> None:
        self._uris = dict(config.connections)
        self._server_selection_timeout_ms = int(
            config.server_selection_timeout.total_seconds() * 1000
        )
        self._active_name: str | None = None
        self._client: AsyncMongoClient | None = None
        self._default_connection = config.default_connection

    def connection_names(self) -> list[str]:
        return list(self._uris)

    def get_active_connection(self) -> str | None:
        return self._active_name

    async def connect(self, name: str) -> None:
        uri = self._uris.get(name)
        if uri is None:
            raise ConnectionUnavailableError(f"Unknown connection: {name}")

        client: AsyncMongoClient = AsyncMongoClient(
            uri, serverSelectionTimeoutMS=self._server_selection_timeout_ms
        )
        try:
            await client.admin.command("ping")
        except Exception as exc:
            await client.close()
            raise ConnectionUnavailableError(
                f"Unable to connect to {name}: {exc}"
            ) from exc

        await self.close()
        self._client = client
        self._active_name = name
        logger.info("Connected to %s", name)

    def _require_client(self) -> AsyncMongoClient:
        if self._client is None:
            raise ConnectionUnavailableError("No active connection")
        return self._client

    async def list_databases(
        self, token: CancellationToken | None = None
    ) -> list[str]:
        client = self._require_client()
        return await run_cancellable(client.list_database_names(), token)

    async def list_collections(
        self, database_name: str, token: CancellationToken | None = None
    ) -> list[str]:
        client = self._require_client()
        return await run_cancellable(
            client[database_name].list_collection_names(), token
        )

    async def sample(
        self,
        database_name: str,
        collection_name: str,
        *,
        size: int,
        query: Mapping[str, Any] | None = None,
        token: CancellationToken | None = None,
    ) -> list[Document]:
        client = self._require_client()
        pipeline: list[dict[str, Any]] = []
        if query:
            pipeline.append({"$match": dict(query)})
        pipeline.append({"$sample": {"size": size}})

        async def _run() -> list[Document]:
            cursor = await client[database_name][collection_name].aggregate(pipeline)
            return await cursor.to_list(length=size)

        return await run_cancellable(_run(), token)

    async def open_default(self) -> None:
        if self._default_connection:
            await self.connect(self._default_connection)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._active_name = None


# ---------------------------------------------------------------------------
# Lifespan dependency
# ---------------------------------------------------------------------------


async def build_connection_provider(
    app: Annotated[FastAPI, Depends(get_app)],
    config: Annotated[ConnectionConfig, Depends(get_connection_config)],
) -> AsyncGenerator[None, None]:
    """Create the shared connection provider and close it on shutdown."""
    provider = MongoConnectionProvider(config)
    try:
        await provider.open_default()
    except Exception:
        logger.warning(
            "Default connection %r unavailable; users will be asked to connect.",
            config.default_connection,
            exc_info=True,
        )
    app.state.connection_provider = provider
    yield
    await provider.close()


def get_connection_provider(request: Request) -> ConnectionProvider:
    return request.app.state.connection_provider
