"""
KitVerify Configuration

Central settings loaded from environment variables.
"""

import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()

# Render sets RENDER=true automatically
_ON_RENDER = os.getenv("RENDER", "").lower() == "true"
_DATA_DIR = "/data/" if _ON_RENDER else ""


@dataclass(frozen=True)
class Settings:
    """Immutable application settings."""

    # --- Versioning ---
    ENGINE_VERSION: str = "1.0.0"
    API_VERSION: str = "1"

    # --- Reference store ---
    STORE: str = os.getenv("KITVERIFY_STORE", "sqlite")
    DB_PATH: str = os.getenv("KITVERIFY_DB_PATH", f"{_DATA_DIR}kitverify.db")
    SEED_DEFAULTS: bool = os.getenv("KITVERIFY_SEED_DEFAULTS", "true").lower() == "true"

    # --- Verification ---
    LOOKUP_TIMEOUT: float = float(os.getenv("KITVERIFY_LOOKUP_TIMEOUT", "2.0"))
    COLOR_CONFIDENCE_MIN: float = float(
        os.getenv("KITVERIFY_COLOR_CONFIDENCE_MIN", "40")
    )
    MAX_BATCH_SIZE: int = int(os.getenv("KITVERIFY_MAX_BATCH", "100"))

    # --- Server ---
    HOST: str = os.getenv("KITVERIFY_HOST", "0.0.0.0")
    PORT: int = int(os.getenv("KITVERIFY_PORT", "8000"))

    # --- CORS ---
    CORS_ORIGINS: str = os.getenv("KITVERIFY_CORS_ORIGINS", "*")


settings = Settings()
