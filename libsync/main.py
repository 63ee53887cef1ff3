"""Entry points for host applications: logging setup and client lifespan."""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from .config import Settings, settings
from .context import ClientContext
from .services.push_provider import PushProvider

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: int = logging.INFO):
    """Configure root logging the same way for every host application."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # httpx logs every request at INFO; the pipeline already does
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


@asynccontextmanager
async def client_lifespan(
    config: Optional[Settings] = None,
    push_provider: Optional[PushProvider] = None,
) -> AsyncIterator[ClientContext]:
    """Client lifespan - start up, hand the context to the app, shut down."""
    config = config or settings
    context = ClientContext(config, push_provider=push_provider)
    await context.start()
    try:
        yield context
    finally:
        await context.close()
        logger.info("Shutdown complete")
