"""merge_cli.py
Merge a regenerated note into an existing, hand-edited note.

Policy and markers default to the values in :pyfile:`bibnotes.notes.settings`.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from bibnotes.common.settings import settings as common_settings
from bibnotes.notes.merge import MergeOptions, MergePolicy
from bibnotes.notes.note_writer import cite_key_from_note_name, write_note
from bibnotes.notes.settings import settings

logger = logging.getLogger(__name__)

_POLICIES = {
    "overwrite": MergePolicy.OVERWRITE_ALL,
    "preserve-all": MergePolicy.PRESERVE_ALL,
    "preserve-section": MergePolicy.PRESERVE_SECTION,
}


def _default_policy() -> str:
    return next(name for name, policy in _POLICIES.items() if policy is settings.save_manual_edits)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Merge a generated note into an existing note without losing manual edits.",
    )
    parser.add_argument("note", type=Path, help="Existing note (created if missing)")
    parser.add_argument("generated", type=Path, help="File holding the freshly generated note")
    parser.add_argument(
        "--policy", choices=sorted(_POLICIES), default=_default_policy(), help="Preservation policy"
    )
    parser.add_argument(
        "--start", default=settings.save_manual_edits_start, help="Preserved section start marker"
    )
    parser.add_argument(
        "--end", default=settings.save_manual_edits_end, help="Preserved section end marker"
    )
    parser.add_argument(
        "--author-key",
        default="",
        help="Author label used in appended citations, e.g. 'Smith et al.'",
    )
    parser.add_argument(
        "--single-spaced",
        action="store_true",
        default=not settings.double_spaced,
        help="Do not add a blank line before re-inserted lines",
    )
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    logging.basicConfig(level=common_settings.log_level.upper())

    options = MergeOptions(
        policy=_POLICIES[args.policy],
        start_marker=args.start,
        end_marker=args.end,
        author_disambiguator=args.author_key,
        double_spaced=not args.single_spaced,
    )
    try:
        generated = args.generated.read_text(encoding="utf-8")
    except OSError as exc:
        raise SystemExit(f"Cannot read {args.generated}: {exc}")

    cite_key = cite_key_from_note_name(args.note.stem, settings.export_title)
    if cite_key is None:
        logger.warning("%s does not follow the note title template %r", args.note.name, settings.export_title)
    else:
        logger.info("Merging note for %s", cite_key)

    asyncio.run(write_note(args.note, generated, options))


if __name__ == "__main__":
    main()
