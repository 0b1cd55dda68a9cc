"""Create tables / indexes and the upload directory without starting the server"""
import asyncio
import logging

from app.config import settings
from app.database import engine, init_db

logger = logging.getLogger("init_db")


async def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    logger.info("Initializing database (%s)...", engine.dialect.name)
    await init_db()
    upload_dir = settings.resolve_upload_dir()
    upload_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Database ready, uploads stored in %s", upload_dir)
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
