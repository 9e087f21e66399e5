#!/usr/bin/env python3
import logging
import os

import uvicorn
from app.app import create_app

is_dev_mode = os.getenv("TABLEQUERY_DEV_MODE", "false").lower() == "true"

logging.basicConfig(
    level=logging.DEBUG if is_dev_mode else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("tablequery")

# Create the FastAPI app
app = create_app()


if __name__ == "__main__":
    logger.info("Starting table query service on 0.0.0.0:8000 (dev mode: %s)", is_dev_mode)
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=is_dev_mode)
