"""Main FastAPI application and server startup."""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import uvicorn

from persona_memory.config.settings import Settings, load_settings_from_env
from persona_memory.generation.completion import CompletionFn
from persona_memory.memory.errors import ConversationNotFound, SummarizationFailed
from persona_memory.memory.integrate import create_memory_integration
from persona_memory.memory.store import SQLiteMemoryStore
from .memory import router as memory_router


logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    complete: Optional[CompletionFn] = None,
    persistent: bool = False,
) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Application settings, read from the environment when omitted
        complete: Completion capability, defaults to the provider completer
        persistent: Back memories with SQLite and conversations with JSON

    Returns:
        FastAPI app with the memory system on ``app.state.memory``
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    settings = settings or load_settings_from_env()

    app = FastAPI(
        title="Persona Memory API",
        description="Long-term conversation memory for persona chat",
        version="0.1.0",
    )
    app.state.settings = settings
    app.state.memory = create_memory_integration(settings, complete, persistent=persistent)
    app.include_router(memory_router, prefix="/api")

    @app.exception_handler(ConversationNotFound)
    async def conversation_not_found(request: Request, exc: ConversationNotFound):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(SummarizationFailed)
    async def summarization_failed(request: Request, exc: SummarizationFailed):
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    @app.on_event("shutdown")
    async def shutdown_event():
        """Flush conversations and close storage."""
        memory = app.state.memory
        memory.conversations.save()
        if isinstance(memory.store, SQLiteMemoryStore):
            memory.store.close()

    @app.get("/health")
    async def health():
        memory = app.state.memory
        return {
            "status": "ok",
            "memories": memory.store.count(),
            "conversations": len(memory.conversations),
        }

    return app


def run():
    """Run the development server."""
    uvicorn.run(
        "persona_memory.api.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
    )


if __name__ == "__main__":
    run()
