"""Request/response facade over the vector-memory components.

All connections are created here, explicitly, and injected into the store,
aggregator and pipeline. The process entry point owns the lifecycle.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from pydantic import ValidationError

from collection import CollectionManager
from config import Config
from embeddings import EmbeddingProvider
from errors import InvalidAction, StoreUnavailable
from ingestion import IngestionPipeline
from memory_store import Embedder, MemoryStore
from models import ItemData
from retrieval import RetrievalAggregator

logger = logging.getLogger(__name__)

ACTIONS = ("create", "update", "complete")


class CareerMemory:
    def __init__(
        self,
        config: Config,
        *,
        collection: CollectionManager,
        embedder: Embedder,
    ) -> None:
        self.config = config
        self.collection = collection
        self.embedder = embedder
        self.store = MemoryStore(collection, embedder, config)
        self.retrieval = RetrievalAggregator(self.store, config)
        self.ingestion = IngestionPipeline(self.store, embedder, config)

    @classmethod
    def from_config(cls, config: Config) -> CareerMemory:
        return cls(
            config,
            collection=CollectionManager(config),
            embedder=EmbeddingProvider(config),
        )

    async def start(self) -> None:
        """Bootstrap the table so the first request doesn't pay for it."""
        await self.collection.ensure()

    def close(self) -> None:
        close = getattr(self.embedder, "close", None)
        if close is not None:
            close()
        self.collection.reset()

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------
    async def search(self, query: str, user_id: str) -> list[dict[str, Any]]:
        """Top in-progress items related to ``query``; step one of search-then-mutate."""
        hits = await self.store.search(user_id, query, in_progress_only=True)
        return [hit.to_dict() for hit in hits]

    async def mutate(
        self,
        action: str,
        user_id: str,
        item_id: str | None = None,
        item_data: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Create, update, or complete a tracked item.

        Input is fully validated before any network call. The caller decides
        between create and update from a prior :meth:`search`.
        """
        if action not in ACTIONS:
            raise InvalidAction(f"Invalid action: {action}")
        if not user_id:
            raise InvalidAction("userId is required")
        if action in ("update", "complete") and not item_id:
            raise InvalidAction(f"itemId is required for '{action}' action.")

        item: ItemData | None = None
        if action in ("create", "update"):
            if item_data is None:
                raise InvalidAction(f"itemData is required for '{action}' action.")
            try:
                item = ItemData.model_validate(item_data)
            except ValidationError as e:
                raise InvalidAction(f"Malformed itemData: {e}") from e

        if action == "create":
            record_id = await self.store.create(user_id, item.type, item.to_data())
            return {"success": True, "message": f"Created new item: {item.item}", "id": record_id}

        if action == "update":
            await self.store.update(user_id, item_id, item.type, item.to_data())
            return {"success": True, "message": f"Updated item: {item.item}", "id": item_id}

        removed = await self.store.complete(user_id, item_id)
        message = (
            f"Completed and removed item ID: {item_id}"
            if removed
            else f"Item ID {item_id} already complete"
        )
        return {"success": True, "message": message, "id": item_id}

    async def bulk_ingest(self, user_id: str, sections: Mapping[str, Any] | None) -> dict[str, Any]:
        result = await self.ingestion.ingest(user_id, sections)
        return result.to_payload()

    async def get_view(self, user_id: str, view_name: str, limit: int | None = None) -> Any:
        return await self.retrieval.get_view(user_id, view_name, limit)

    async def search_history(
        self, user_id: str, query: str, limit: int = 10, record_type: str | None = None
    ) -> list[dict[str, Any]]:
        return await self.retrieval.search_history(
            user_id, query, limit=limit, record_type=record_type
        )

    async def delete_all(self, user_id: str) -> bool:
        """Account reset. Returns False (after logging) if the table refused it."""
        try:
            await self.store.delete_all(user_id)
        except StoreUnavailable as e:
            logger.error("Error deleting data for user %s: %s", user_id, e)
            return False
        return True

    async def stats(self) -> dict[str, Any]:
        return {
            "table": self.config.table_name,
            "total": await self.store.total_rows(),
            "by_type": await self.store.count_by_type(),
            "embedding_provider": self.config.embedding_provider,
            "embedding_model": self.config.embedding_model,
            "embedding_dim": self.config.embedding_dim,
            "distance": self.config.distance_metric,
        }
