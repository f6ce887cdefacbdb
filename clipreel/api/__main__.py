"""API server entry point for python -m clipreel.api"""
import logging

import uvicorn
from clipreel.config import settings

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(
        "clipreel.api.app:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=False,
    )
