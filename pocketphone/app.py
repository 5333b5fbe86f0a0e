import asyncio
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from pocketphone import storage
from pocketphone.llm import Gateway
from pocketphone.pipeline import (
    ActivePresetGateway,
    ChatSession,
    DeliveryScheduler,
    Sleep,
    StorageContext,
)
from pocketphone.routes import router

load_dotenv(Path(__file__).parent.parent / ".env")

STATIC_DIR = Path(__file__).parent / "static"
DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def create_chat_session(gateway: Gateway | None = None, sleep: Sleep = asyncio.sleep) -> ChatSession:
    """Wire the reply pipeline to JSON storage and the active API preset.

    Pacing and the endpoint are read from config.json whenever they are
    used, so settings changes apply without a restart.
    """
    store = storage.ConversationStore(storage.chat_history_path())
    return ChatSession(
        store,
        StorageContext(),
        gateway or ActivePresetGateway(),
        scheduler=DeliveryScheduler(store, sleep=sleep, resolve_delay_ms=storage.get_delivery_delay_ms),
        sleep=sleep,
        resolve_claim_delay_ms=storage.get_claim_delay_ms,
    )


def create_app(data_dir: Path | None = None) -> FastAPI:
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    storage.init_storage(resolved)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.chat.aclose()

    app = FastAPI(title="Pocket Phone", lifespan=lifespan)
    app.state.chat = create_chat_session()
    app.include_router(router, prefix="/api")

    if STATIC_DIR.exists() and not os.getenv("VITE_DEV", ""):
        # Serve static assets (JS, CSS, etc.)
        app.mount("/assets", StaticFiles(directory=STATIC_DIR / "assets"), name="assets")

        # SPA fallback: all non-API routes serve index.html
        @app.get("/{path:path}")
        async def spa_fallback(path: str):
            return FileResponse(STATIC_DIR / "index.html")

    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
