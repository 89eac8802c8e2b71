import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from jack.api import control
from jack.bot.connector import get_connector
from jack.bot.transport import ConfigurationError

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    connector = get_connector()
    if connector.config.autostart:
        try:
            await connector.start()
        except ConfigurationError as e:
            # Dashboard can still start it once credentials are in place
            logger.error(f"Connector not started: {e}")
    yield
    await connector.close()


app = FastAPI(lifespan=lifespan)

# Include API routers
app.include_router(control.router)


@app.get("/healthz")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run("jack.main:app", host="0.0.0.0", port=int(os.environ.get("PORT", "5000")))
