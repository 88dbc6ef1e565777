"""Write a generated note to disk, merging it with any existing copy."""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import Optional

from bibnotes.notes.merge import MergeOptions, MergePolicy, merge

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\\\{\\\{([^}]+?)\\\}\\\}")
_CITE_KEY_PLACEHOLDERS = frozenset({"citekey", "citationkey"})


def _read(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


async def write_note(path: Path | str, generated: str, options: MergeOptions) -> str:
    """Create *path* from *generated*, or merge into the note already there.

    Returns:
        The text that was written.
    """
    path = Path(path)
    exists = await asyncio.to_thread(path.exists)
    text = generated
    if exists and options.policy is not MergePolicy.OVERWRITE_ALL:
        existing = await asyncio.to_thread(_read, path)
        text = merge(existing, generated, options)
    await asyncio.to_thread(_write, path, text)
    logger.info("%s note %s", "Updated" if exists else "Created", path)
    return text


def cite_key_from_note_name(note_name: str, title_template: str) -> Optional[str]:
    """Recover the citation key from a note file name.

    Args:
        note_name: File name such as ``@smith2020 - Title.md``.
        title_template: Naming template such as ``@{{citeKey}} - {{title}}.md``.

    Returns:
        The citation key, or ``None`` if the name does not fit the template or
        the template has no citation-key placeholder.
    """
    has_key = False

    def _replace(match: re.Match[str]) -> str:
        nonlocal has_key
        if match.group(1).strip().lower() in _CITE_KEY_PLACEHOLDERS and not has_key:
            has_key = True
            return r"(?P<key>.+?)"
        return r".*?"

    pattern = _PLACEHOLDER.sub(_replace, re.escape(title_template))
    if not has_key:
        return None
    match = re.fullmatch(pattern, note_name)
    return match.group("key") if match else None
