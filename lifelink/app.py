import asyncio
import logging
import sys

from lifelink.config import Settings, settings
from lifelink.db import init_db, make_engine, run_migrations


def configure_logging(cfg: Settings | None = None) -> None:
    cfg = cfg or settings
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if cfg.LOG_DIR is not None:
        cfg.LOG_DIR.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(cfg.LOG_DIR / "lifelink.log", encoding="utf-8"))

    logging.basicConfig(
        level=cfg.LOG_LEVEL.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )
    # SQL echo only when explicitly debugging
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


async def main(cfg: Settings | None = None) -> None:
    cfg = cfg or settings
    configure_logging(cfg)
    logging.info("LifeLink starting…")

    if not await run_migrations(cfg):
        engine = make_engine(cfg)
        try:
            await init_db(engine)
        finally:
            await engine.dispose()
        logging.info("No alembic.ini found, tables created directly")

    logging.info(
        "Matching: cooldown=%d days, proximity radius=%.0f km, neutral location score=%.0f",
        cfg.MIN_DONATION_INTERVAL_DAYS,
        cfg.PROXIMITY_MAX_DISTANCE_KM,
        cfg.NEUTRAL_LOCATION_SCORE,
    )


if __name__ == "__main__":
    asyncio.run(main())
