"""
core/config.py — Single source of truth for all environment configuration.

Rules:
- All env vars are read HERE and nowhere else.
- load_dotenv() is called ONCE here.
- Components receive a Settings instance explicitly; `settings` is the
  process-wide default built at import time.
- Missing credentials are logged loudly but never crash the process.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# ── Load .env (repo root, so works from backend/ or root) ────────────────────
_env_path = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(dotenv_path=_env_path, override=False)

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./knowledge.db"

# Embedding providers understood by services.embedding_service.create_embedder
EMBEDDING_PROVIDERS = ("placeholder", "gemini")

# RagConfiguration defaults, applied when an agent's config is created lazily
DEFAULT_CHUNK_SIZE = 512
DEFAULT_CHUNK_OVERLAP = 50
DEFAULT_TOP_K = 3
DEFAULT_SIMILARITY_THRESHOLD = 0.7


def _normalize_database_url(database_url: str) -> str:
    """Force an async driver onto the URL and drop Prisma-only query params."""
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif database_url.startswith("sqlite://") and not database_url.startswith("sqlite+"):
        database_url = database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    # Strip any ?schema=public (Prisma-style) not supported by asyncpg
    if "?schema=" in database_url:
        database_url = database_url.split("?schema=")[0]
    return database_url


class Settings:
    """
    Validated application settings loaded from environment variables.
    """

    def __init__(self) -> None:
        # ── Database ──────────────────────────────────────────────────────────
        self.database_url: str = _normalize_database_url(
            os.getenv("DATABASE_URL", "").strip() or DEFAULT_DATABASE_URL
        )
        self.database_echo: bool = os.getenv("DATABASE_ECHO", "").strip().lower() in ("1", "true", "yes")

        # ── Embeddings ────────────────────────────────────────────────────────
        self.embedding_provider: str = (
            os.getenv("EMBEDDING_PROVIDER", "placeholder").strip().lower() or "placeholder"
        )
        self.embedding_model: Optional[str] = os.getenv("EMBEDDING_MODEL", "").strip() or None
        self.embedding_dimensions: Optional[int] = self._int_env("EMBEDDING_DIMENSIONS", None)

        # ── Google Cloud / Gemini ─────────────────────────────────────────────
        self.google_cloud_project: str = os.getenv("GOOGLE_CLOUD_PROJECT", "").strip()
        self.google_cloud_location: str = os.getenv("GOOGLE_CLOUD_LOCATION", "us-central1").strip()
        self.gemini_api_key: Optional[str] = (
            os.getenv("GEMINI_API_KEY", "").strip()
            or os.getenv("GOOGLE_API_KEY", "").strip()
            or None
        )

        # ── App ───────────────────────────────────────────────────────────────
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

        # ── Derived flags ─────────────────────────────────────────────────────
        self.gemini_configured: bool = bool(self.gemini_api_key or self.google_cloud_project)

        self._validate()
        self._log_startup()

    # ── Private helpers ───────────────────────────────────────────────────────

    @staticmethod
    def _int_env(name: str, default: Optional[int]) -> Optional[int]:
        raw = os.getenv(name, "").strip()
        if not raw:
            return default
        try:
            return int(raw)
        except ValueError:
            logger.warning("⚠️  %s is not a valid integer — using default %s", name, default)
            return default

    def _validate(self) -> None:
        """Warn loudly about inconsistent config. Does NOT crash."""
        if self.embedding_provider not in EMBEDDING_PROVIDERS:
            logger.error(
                "❌ Unknown EMBEDDING_PROVIDER=%r (expected one of: %s)",
                self.embedding_provider,
                ", ".join(EMBEDDING_PROVIDERS),
            )
        if self.embedding_provider == "gemini" and not self.gemini_configured:
            logger.error(
                "❌ EMBEDDING_PROVIDER=gemini but neither GEMINI_API_KEY/GOOGLE_API_KEY "
                "nor GOOGLE_CLOUD_PROJECT is set.\n"
                "   Copy .env.example → .env and fill in the values."
            )

    def _log_startup(self) -> None:
        logger.info(
            "⚙️  Config loaded | DB: %s | Embeddings: %s%s",
            self.database_url.split("://", 1)[0],
            self.embedding_provider,
            f" ({self.embedding_model})" if self.embedding_model else "",
        )


# ── Default instance ──────────────────────────────────────────────────────────
settings = Settings()
