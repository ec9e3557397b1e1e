"""Utility script to bootstrap the database with a demo business and catalog."""

from __future__ import annotations

import asyncio
import logging
import os
import time
import uuid
from dataclasses import dataclass
from decimal import Decimal

from dotenv import load_dotenv
import psycopg
from sqlalchemy import select
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from replydesk.models import AIConfig, BusinessProfile, Policy, Product, Promotion
from replydesk.models.session import create_schema, get_sessionmaker

logger = logging.getLogger("seed")


@dataclass(slots=True)
class SeedConfig:
    """Configuration derived from the environment for the seed process."""

    db_url: str
    sqlalchemy_url: str
    business_name: str
    phone_number_id: str
    access_token: str | None
    verify_token: str | None
    enable_audio: bool


def _to_bool(value: str | None) -> bool:
    """Parse a truthy string value into ``bool``."""

    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _as_sqlalchemy_url(db_url: str) -> str:
    """Ensure PostgreSQL URLs use the ``psycopg`` driver."""

    if db_url.startswith("postgresql+psycopg://"):
        return db_url
    if db_url.startswith("postgresql://"):
        return db_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return db_url


def _safe_url(db_url: str) -> str:
    """Return a version of ``db_url`` with any password redacted."""

    parsed = make_url(db_url)
    if parsed.password is None:
        return db_url
    redacted = parsed.set(password="***")
    return redacted.render_as_string(hide_password=False)


def _build_database_url() -> str:
    """Compute the database URL from ``DATABASE_URL`` or ``PG*`` variables."""

    direct = os.getenv("DATABASE_URL")
    if direct:
        return direct

    host = os.getenv("PGHOST")
    port = os.getenv("PGPORT", "5432")
    database = os.getenv("PGDATABASE")
    user = os.getenv("PGUSER")
    password = os.getenv("PGPASSWORD")

    if not all([host, database, user]):
        raise RuntimeError(
            "DATABASE_URL is not configured and PGHOST/PGDATABASE/PGUSER are missing."
        )

    auth = user
    if password:
        auth = f"{user}:{password}"
    return f"postgresql://{auth}@{host}:{port}/{database}"


def _load_config() -> SeedConfig:
    """Load seed configuration from environment variables."""

    db_url = _build_database_url()
    return SeedConfig(
        db_url=db_url,
        sqlalchemy_url=_as_sqlalchemy_url(db_url),
        business_name=os.getenv("SEED_BUSINESS_NAME", "Loja Azul").strip(),
        phone_number_id=os.getenv("SEED_PHONE_NUMBER_ID")
        or os.getenv("WHATSAPP_PHONE_NUMBER_ID")
        or "000000000000000",
        access_token=os.getenv("WHATSAPP_ACCESS_TOKEN") or None,
        verify_token=os.getenv("SEED_VERIFY_TOKEN") or None,
        enable_audio=_to_bool(os.getenv("SEED_ENABLE_AUDIO")),
    )


def wait_for_database(max_attempts: int = 10, delay: float = 3.0) -> None:
    """Attempt to establish a PostgreSQL connection, retrying if necessary.

    Non-PostgreSQL URLs (e.g. SQLite for local development) return at once.
    """

    db_url = _build_database_url()
    if not db_url.startswith("postgresql"):
        return
    conninfo = db_url.replace("postgresql+psycopg://", "postgresql://", 1)
    safe_url = _safe_url(db_url)

    for attempt in range(1, max_attempts + 1):
        try:
            with psycopg.connect(conninfo, connect_timeout=5) as connection:
                with connection.cursor() as cursor:
                    cursor.execute("SELECT 1")
        except psycopg.Error as exc:  # pragma: no cover - depends on external DB
            logger.info(
                "Database not ready (attempt %d/%d): %s; retrying in %.1fs",
                attempt,
                max_attempts,
                exc,
                delay,
            )
            if attempt >= max_attempts:
                raise RuntimeError("Database did not become ready in time") from exc
            time.sleep(delay)
            continue

        logger.info("Database connection established after %d attempt(s): %s", attempt, safe_url)
        return


def _provision_business(factory: sessionmaker[Session], config: SeedConfig) -> uuid.UUID:
    """Create or reuse the demo business with its AI config and records."""

    with factory() as session:
        business = session.execute(
            select(BusinessProfile).where(
                BusinessProfile.whatsapp_phone_id == config.phone_number_id
            )
        ).scalar_one_or_none()
        if business is not None:
            logger.info("Business %s already exists; reusing.", business.name)
            return business.id

        business = BusinessProfile(
            name=config.business_name,
            description="Moda casual masculina e feminina",
            industry="Varejo",
            tone="friendly",
            ai_name="IARA",
            whatsapp_token=config.access_token,
            whatsapp_phone_id=config.phone_number_id,
            webhook_verify_token=config.verify_token,
        )
        session.add(business)
        session.flush()
        session.add(
            AIConfig(
                business_id=business.id,
                response_style="balanced",
                enable_audio=config.enable_audio,
                transfer_keywords=["atendente", "humano"],
            )
        )
        session.add_all(
            [
                Product(
                    business_id=business.id,
                    name="Camisa Polo",
                    description="Camisa polo de algodão",
                    price=Decimal("89.90"),
                    stock=5,
                    category="Camisas",
                ),
                Product(
                    business_id=business.id,
                    name="Calça Jeans",
                    price=Decimal("149.90"),
                    stock=12,
                    category="Calças",
                ),
                Policy(
                    business_id=business.id,
                    type="exchange",
                    title="Trocas",
                    description="Trocas em até 30 dias com etiqueta.",
                ),
                Promotion(
                    business_id=business.id,
                    title="Semana Azul",
                    description="Desconto em toda a loja",
                    discount_percentage=Decimal("10"),
                ),
            ]
        )
        session.commit()
        logger.info("Created business %s (%s)", business.name, business.id)
        if not config.access_token:
            logger.warning(
                "No WhatsApp access token stored; replies will use WHATSAPP_ACCESS_TOKEN."
            )
        return business.id


async def main() -> None:
    """Entrypoint for the seeding workflow."""

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    wait_for_database()
    config = _load_config()
    logger.info("Starting seed process using %s", _safe_url(config.db_url))

    session_factory = get_sessionmaker(database_url=config.sqlalchemy_url)
    await asyncio.to_thread(create_schema, session_factory.kw["bind"])
    business_id = await asyncio.to_thread(_provision_business, session_factory, config)
    logger.info("Seed process completed. Business ID: %s", business_id)


if __name__ == "__main__":
    asyncio.run(main())
