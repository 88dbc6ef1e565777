"""Settings shared by *extraction*, *cache* and the command-line tools.

All values are sourced from environment variables (or a ``.env`` file loaded at
import time).  They locate the Zotero database being mirrored and the private
directory where the JSON cache snapshots live.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv(override=True)


class Settings(BaseSettings):
    """Source and cache configuration.

    Fields
    ------
    zotero_db_path
        Path to ``zotero.sqlite``.  The optional Better BibTeX database is
        looked up next to it as ``better-bibtex.sqlite``.
    cache_dir
        Directory holding one cache snapshot per source path.
    log_level
        Root log level used by the CLIs.
    show_progress
        Display a *tqdm* progress bar while entries are being assembled.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    zotero_db_path: Optional[Path] = Field(None)
    cache_dir: Path = Field(Path.home() / ".cache" / "bibnotes")
    log_level: str = Field("INFO")
    show_progress: bool = Field(False)


settings = Settings()
