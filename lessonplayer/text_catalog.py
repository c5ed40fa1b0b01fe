from __future__ import annotations

import csv
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from lessonplayer.core.localizer import DEFAULT_LANG, normalize_lang

logger = logging.getLogger(__name__)

CATALOG_FILE = "ui_text.csv"
PACKAGE_ROOT = Path(__file__).resolve().parent  # holds catalog/ui_text.csv


class CatalogLoadError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class TextCatalog:
    """UI chrome strings keyed by message id, one column per language.

    Lookup falls back lang -> en -> the key itself, then applies `{0}`-style
    positional formatting.
    """

    rows: dict[str, dict[str, str]]

    def get_text(self, key: str, lang: str, *args: object) -> str:
        row = self.rows.get(key)
        if row is None:
            return key
        text = row.get(normalize_lang(lang)) or row.get(DEFAULT_LANG) or key
        if not args:
            return text
        try:
            return text.format(*args)
        except (IndexError, KeyError, ValueError):
            logger.debug("Could not format catalog entry %s=%r with %r", key, text, args)
            return text

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key in self.rows

    def languages(self) -> set[str]:
        return {lang for row in self.rows.values() for lang in row}


def _read_csv_rows(path: Path) -> list[list[str]]:
    try:
        with path.open(encoding="utf-8-sig", newline="") as f:
            rows = [[c.strip() for c in row] for row in csv.reader(f)]
    except FileNotFoundError as e:
        raise CatalogLoadError(f"Catalog file not found: {path}") from e
    return [row for row in rows if any(cell for cell in row)]


def load_catalog_csv(path: Path) -> TextCatalog:
    rows = _read_csv_rows(path)
    if not rows:
        raise CatalogLoadError(f"Empty catalog CSV: {path}")

    header = [normalize_lang(c) if i else c.casefold() for i, c in enumerate(rows[0])]
    if not header or header[0] != "key" or DEFAULT_LANG not in header[1:]:
        raise CatalogLoadError(f"Unexpected header in {path}: {rows[0]}")

    out: dict[str, dict[str, str]] = {}
    for row in rows[1:]:
        key = row[0] if row else ""
        if not key or key.startswith("#"):
            continue
        if key in out:
            raise CatalogLoadError(f"Duplicate catalog key: {key}")
        out[key] = {lang: cell for lang, cell in zip(header[1:], row[1:]) if cell}
    return TextCatalog(rows=out)


def _fallback_catalog() -> TextCatalog:
    """English-only chrome used when the CSV is missing (tests, bare checkouts)."""

    english = {
        "next": "Next",
        "finish": "Finish",
        "back": "Back",
        "back_to_course": "Back to Course",
        "step_progress": "Step {0} of {1}",
        "next_locked": "Next ({0}s)",
        "unknown_step": "Unsupported step type: {0}",
        "broken_step": "This step could not be displayed.",
        "load_failed": "Failed to load module.",
        "module_complete": "Module complete!",
        "continue": "Continue",
        "done_watching": "Done watching",
        "accept_mission": "Accept Mission",
        "submit": "Submit",
        "reflection_title": "Reflection Time",
        "reflection_placeholder": "Write your thoughts here...",
        "reflection_empty": "Please write something first.",
        "correct": "Correct!",
        "not_quite": "Not quite.",
        "answer_is": "Not quite. The answer is '{0}'.",
        "try_again": "Try Again",
        "complete_sentence": "Complete the sentence:",
        "grammar_focus": "Grammar Focus: {0}",
        "examples": "Examples:",
        "quick_quiz": "Quick Quiz:",
        "match_title": "Match the Pairs",
        "match_correct": "Correct Match!",
        "match_wrong": "Not a match. Try again.",
        "match_done": "Excellent! All pairs matched.",
        "sequence_complete": "Sequence Complete!",
        "catch_letter": "Catch this Letter:",
        "score": "Score:",
        "time": "Time:",
        "you_win": "You Win!",
        "game_over": "Game Over",
        "start": "START",
        "round_over": "Round Over!",
        "play_again": "Play Again",
        "great_job": "Great Job!",
        "slasher_hint": "Move and slice. Avoid {0}!",
        "dialogue_you": "You",
        "listen": "Listen",
        "saved": "Saved.",
        "play_all": "Play All",
        "stop": "Stop",
        "roleplay_title": "Roleplay",
        "roleplay_wrong": "That's not the best choice here.",
        "times_table": "Table of {0}",
        "score_of": "Score: {0} / {1}",
        "you_finished": "You finished!",
        "final_score": "Final Score: {0}/{1}",
    }
    return TextCatalog(rows={k: {DEFAULT_LANG: v} for k, v in english.items()})


def load_text_catalog(*, root: Path) -> TextCatalog:
    # Falls back to the built-in English table when the CSV is missing or broken.
    # Set LESSONPLAYER_STRICT_CATALOG=1 to fail instead.
    strict = os.getenv("LESSONPLAYER_STRICT_CATALOG", "").strip().lower() in {"1", "true", "yes"}

    try:
        return load_catalog_csv(root / "catalog" / CATALOG_FILE)
    except CatalogLoadError:
        if strict:
            raise
        logger.warning("UI text catalog unavailable under %s; using built-in English strings", root)
        return _fallback_catalog()


_CATALOG: TextCatalog | None = None


def init_text_catalog(*, root: Path | None = None) -> TextCatalog:
    """Load the catalog once and cache it. Later calls return the cached instance."""

    global _CATALOG
    if _CATALOG is None:
        _CATALOG = load_text_catalog(root=root or PACKAGE_ROOT)
    return _CATALOG


def get_text_catalog() -> TextCatalog:
    if _CATALOG is None:
        raise RuntimeError("Text catalog not initialized. Call init_text_catalog() at startup.")
    return _CATALOG


def reset_text_catalog_for_tests() -> None:
    global _CATALOG
    _CATALOG = None
