#!/usr/bin/env python3
"""
Career Memory MCP Server - per-user vector memory for a career-tracking assistant

Tracks in-progress skills, projects and experiences, plus ingested profile and
conversation history, in a single LanceDB table partitioned by user:
- FastMCP tools for search-then-mutate of tracked items
- LanceDB cosine similarity search with payload filters
- Google Gemini (or local Ollama) embeddings, 768-dim by default
"""

import asyncio
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Literal

from mcp.server.fastmcp import Context, FastMCP

from career_memory import CareerMemory
from config import CONFIG
from errors import CareerMemoryError

logger = logging.getLogger("career_memory.server")


# =============================================================================
# Lifespan (owns the store and embedding clients)
# =============================================================================


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[CareerMemory]:
    memory = CareerMemory.from_config(CONFIG)
    await memory.start()
    logger.info("Server ready (table=%s, dim=%d)", CONFIG.table_name, CONFIG.embedding_dim)
    try:
        yield memory
    finally:
        memory.close()


mcp = FastMCP(
    "career-memory",
    instructions=(
        "Per-user career memory. Search for related in-progress items first, "
        "then create, update, or complete exactly one of them."
    ),
    lifespan=lifespan,
)


def _memory(ctx: Context) -> CareerMemory:
    return ctx.request_context.lifespan_context


def _error(e: CareerMemoryError) -> dict[str, Any]:
    return {"success": False, "message": f"Error: {e}"}


# =============================================================================
# Tools
# =============================================================================


@mcp.tool(
    annotations={
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
    }
)
async def memory_search(query: str, user_id: str, ctx: Context) -> dict[str, Any]:
    """Find the user's in-progress items related to a log entry or question.

    Call this before memory_mutate to decide between create and update.

    Args:
        query: The user's log or query to search for related items
        user_id: The unique identifier for the user
    """
    try:
        results = await _memory(ctx).search(query, user_id)
    except CareerMemoryError as e:
        return _error(e)
    return {"success": True, "results": results}


@mcp.tool(
    annotations={
        "readOnlyHint": False,
        "destructiveHint": True,
        "idempotentHint": False,
    }
)
async def memory_mutate(
    action: Literal["create", "update", "complete"],
    user_id: str,
    ctx: Context,
    item_id: str | None = None,
    item_data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Create, update, or complete an in-progress item.

    Args:
        action: create | update | complete
        user_id: The unique identifier for the user
        item_id: ID of the item to update or complete (required for update/complete)
        item_data: {item, type, embeddingText, milestones[], skillsUsed[]?} (required for create/update)
    """
    try:
        return await _memory(ctx).mutate(action, user_id, item_id, item_data)
    except CareerMemoryError as e:
        return _error(e)


@mcp.tool(
    annotations={
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False,
    }
)
async def memory_bulk_ingest(user_id: str, sections: dict[str, Any], ctx: Context) -> dict[str, Any]:
    """Upload a user's profile and conversation data as searchable memory.

    Args:
        user_id: The unique identifier for the user
        sections: {profile, speechPattern, summary, keyInsights, extractedSkills, rawMessages}
    """
    try:
        result = await _memory(ctx).bulk_ingest(user_id, sections)
    except CareerMemoryError as e:
        return {**_error(e), "vectorsCreated": 0}
    message = "Nothing to ingest" if result["empty"] else "Data uploaded to vector database"
    return {"success": True, "message": message, **result}


@mcp.tool(
    annotations={
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
    }
)
async def memory_view(
    user_id: str,
    view_name: Literal[
        "speech_pattern", "skills", "projects", "work_experience", "insights", "recent_messages"
    ],
    ctx: Context,
    limit: int | None = None,
) -> dict[str, Any]:
    """Read a named view of the user's stored memory.

    Args:
        user_id: The unique identifier for the user
        view_name: speech_pattern, skills, projects, work_experience, insights, recent_messages
        limit: Max messages for recent_messages (default 10)
    """
    try:
        data = await _memory(ctx).get_view(user_id, view_name, limit)
    except CareerMemoryError as e:
        return _error(e)
    return {"success": True, "data": data}


@mcp.tool(
    annotations={
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
    }
)
async def memory_search_history(
    user_id: str,
    query: str,
    ctx: Context,
    limit: int = 10,
    record_type: str | None = None,
) -> dict[str, Any]:
    """Semantic search across everything stored for the user, any status.

    Args:
        user_id: The unique identifier for the user
        query: Search query
        limit: Max results (default 10, max 50)
        record_type: Optional filter, e.g. project, user_message, conversation_summary
    """
    try:
        results = await _memory(ctx).search_history(user_id, query, limit, record_type)
    except CareerMemoryError as e:
        return _error(e)
    return {"success": True, "results": results, "count": len(results)}


@mcp.tool(
    annotations={
        "readOnlyHint": False,
        "destructiveHint": True,
        "idempotentHint": True,
    }
)
async def memory_delete_all(user_id: str, ctx: Context) -> dict[str, Any]:
    """Delete every record stored for a user (account reset).

    Args:
        user_id: The unique identifier for the user
    """
    try:
        success = await _memory(ctx).delete_all(user_id)
    except CareerMemoryError as e:
        return _error(e)
    message = "User data deleted successfully" if success else "Failed to delete user data"
    return {"success": success, "message": message}


@mcp.tool(
    annotations={
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
    }
)
async def memory_health(ctx: Context) -> str:
    """Get memory system health status - table, row counts, embedding configuration."""
    try:
        stats = await _memory(ctx).stats()
    except CareerMemoryError as e:
        return f"Error: {e}"

    lines = [
        "=== Career Memory Health ===",
        f"Table: {stats['table']}",
        f"Total records: {stats['total']}",
        f"Embedding: {stats['embedding_provider']}/{stats['embedding_model']} ({stats['embedding_dim']}D)",
        f"Distance: {stats['distance']}",
        "",
        "By Type:",
    ]
    for record_type, count in sorted(stats["by_type"].items()):
        lines.append(f"  {record_type}: {count}")
    return "\n".join(lines)


# =============================================================================
# Server Entry Point
# =============================================================================


def configure_logging(level: int = logging.INFO) -> None:
    """Log to stderr; stdout carries the MCP stdio protocol."""
    logging.basicConfig(
        stream=sys.stderr,
        level=level,
        format="[career-memory] %(levelname)s %(name)s: %(message)s",
    )


async def run_server():
    """Run the MCP server over stdio."""
    await mcp.run_stdio_async()


def main():
    """Entry point."""
    configure_logging()
    asyncio.run(run_server())


if __name__ == "__main__":
    main()
