"""Configuration for the interactive search client.

Reads values from environment variables or a .env file (shared with sync).
Only parameters required by *search_cli.py* and the debounced searcher are
included.
"""

from __future__ import annotations

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from bibnotes.search.ranking import MAX_RESULTS

load_dotenv(override=True)


class Settings(BaseSettings):
    """Runtime knobs for searching the cache.

    Fields
    ------
    search_max_results
        Cap on the number of ranked results for a non-empty query (at most 50).
    search_debounce_ms
        Quiet interval after the last keystroke before a query is scored.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    search_max_results: int = Field(MAX_RESULTS, ge=1, le=MAX_RESULTS)
    search_debounce_ms: int = Field(80)


settings = Settings()
