"""
SpeechPlay v1.2: Main Application
FastAPI app. Mounts the session router and CORS.
All session state is in memory and ends with the process.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from speechplay.config import CORS_ORIGINS, LOG_LEVEL
from speechplay.session.registry import get_registry
from speechplay.tutor.llm import llm_available

logger = logging.getLogger("speechplay")


# ─── Lifespan (startup/shutdown) ─────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )
    if llm_available():
        logger.info("OpenAI key found: LLM composer and classifiers enabled")
    else:
        logger.warning("OPENAI_API_KEY not set: using templates and keyword intents")

    logger.info("SpeechPlay Safety Gate v1.2.0 ready")
    yield
    get_registry().end_all()
    logger.info("Shutting down")


# ─── App ─────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="SpeechPlay Safety Gate",
    description="Child-safety escalation pipeline for a speech therapy card game",
    version="1.2.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from speechplay.routers import sessions
app.include_router(sessions.router)


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "version": "1.2.0",
        "active_sessions": len(get_registry()),
        "llm": llm_available(),
    }
