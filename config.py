"""
Service settings

Read once from the environment (a local .env file is honoured).
"""
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


COUNTRIES = "countries"
CATEGORIES = "categories"
ARTICLES = "articles"


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str]
    database_name: str
    port: int
    log_level: str


def load_settings() -> Settings:
    load_dotenv()
    return Settings(
        database_url=os.getenv("DATABASE_URL"),
        database_name=os.getenv("DATABASE_NAME", "muslim_go_where"),
        port=int(os.getenv("PORT", 8000)),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
