from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager, suppress
import asyncio
import logging

from database import Base, SessionLocal, engine, get_settings
from api import matchmaking, matches
from core.timeout_sweeper import run_timeout_sweeper

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: 在應用啟動時建立資料庫表，並啟動逾時巡檢
    Base.metadata.create_all(bind=engine)

    sweeper = None
    interval = get_settings().sweep_interval_seconds
    if interval > 0:
        sweeper = asyncio.create_task(run_timeout_sweeper(SessionLocal, interval))

    yield

    # Shutdown: 停止巡檢
    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper


app = FastAPI(
    title="Liar's Lock API",
    description="Match engine for a two-player commit-reveal bluffing game",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure this properly in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(matchmaking.router)
app.include_router(matches.router)


@app.get("/")
def root():
    return {"message": "Liar's Lock API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000)
