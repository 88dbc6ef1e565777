"""Configuration for writing literature notes.

Reads values from environment variables or a .env file (shared with sync and
search).
"""

from __future__ import annotations

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from bibnotes.notes.merge import MergePolicy

load_dotenv(override=True)


class Settings(BaseSettings):
    """Note preservation settings.

    Fields
    ------
    save_manual_edits
        ``Overwrite Entire Note``, ``Save Entire Note`` or ``Select Section``.
    save_manual_edits_start
        Marker opening the preserved section (empty = start of note).
    save_manual_edits_end
        Marker closing the preserved section (empty = end of note).
    double_spaced
        Separate re-inserted lines with a blank line.
    export_title
        Note file-name template; ``{{citeKey}}`` is replaced by the citation key.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    save_manual_edits: MergePolicy = Field(MergePolicy.PRESERVE_ALL)
    save_manual_edits_start: str = Field("")
    save_manual_edits_end: str = Field("")
    double_spaced: bool = Field(True)
    export_title: str = Field("{{citeKey}}")


settings = Settings()
