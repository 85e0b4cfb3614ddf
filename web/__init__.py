"""
IDE Agent: web server.
FastAPI bridge between IDE clients and the agent loop: SSE streaming
endpoints plus a WebSocket channel.

Run:  ide-agent [--port 8765] [--dir /path/to/project]
"""

import logging

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI

from config import app_config
from web import chat

logger = logging.getLogger(__name__)

# ============================================================
# FastAPI application
# ============================================================

app = FastAPI(title=app_config.title)

app.include_router(chat.router)
