from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = os.getenv("DATABASE_URL", "sqlite:///recipe_catalog.db")
    echo: bool = os.getenv("DATABASE_ECHO", "").lower() in ("1", "true", "yes")


DEFAULT_DATABASE_CONFIG = DatabaseConfig()
