# Run from project root: uvicorn app.main:app --reload

import logging

from fastapi import FastAPI

from app.api.redirect import redirect_router
from app.api.routes import router
from app.mcp.server import mcp_router

logging.basicConfig(level=logging.INFO)


app = FastAPI(title="Brand Operating System")
app.include_router(router, prefix="/api")
app.include_router(mcp_router, prefix="/api/mcp")
app.include_router(redirect_router)


if __name__ == "__main__":
    print("Brand Operating System booting...")
