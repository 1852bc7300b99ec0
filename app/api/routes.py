"""
API route aggregator: system endpoints plus the feature routers; no logic beyond delegation.
"""

import logging

from fastapi import APIRouter

from app.api import brand, chat, links, mcp_connections, projects, research
from app.core.config import ANTHROPIC_API_KEY, PERPLEXITY_API_KEY

logger = logging.getLogger(__name__)
router = APIRouter()


# --- System ---

@router.get("/", tags=["system"])
def root():
    return {"status": "Brand Operating System backend running"}


@router.get("/health", tags=["system"])
def health():
    return {
        "ok": True,
        "anthropicConfigured": bool(ANTHROPIC_API_KEY),
        "perplexityConfigured": bool(PERPLEXITY_API_KEY),
    }


router.include_router(chat.router)
router.include_router(research.router)
router.include_router(projects.router)
router.include_router(links.router)
router.include_router(mcp_connections.router)
router.include_router(brand.router)
