from __future__ import annotations

from collections.abc import Mapping
from typing import Any

LANGUAGES: tuple[str, ...] = ("en", "ru", "kg")
DEFAULT_LANG = "en"

# Source systems use "ky" for Kyrgyz; internally it is always "kg".
_ALIASES = {"ky": "kg"}


def normalize_lang(code: object) -> str:
    if not isinstance(code, str) or not code.strip():
        return DEFAULT_LANG
    lang = code.strip().lower()
    return _ALIASES.get(lang, lang)


def resolve(value: Any, lang: str = DEFAULT_LANG) -> str:
    """Resolve a plain string or a language-keyed mapping into one display string.

    Fallback chain: requested language -> "en" -> first available key -> "".
    Never raises.
    """

    if not value:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        for key in (lang, DEFAULT_LANG):
            candidate = value.get(key)
            if isinstance(candidate, str):
                return candidate
        for candidate in value.values():
            if isinstance(candidate, str):
                return candidate
        return ""
    return str(value)


def is_localized(value: Any) -> bool:
    return (
        isinstance(value, Mapping)
        and len(value) > 0
        and all(isinstance(k, str) and k in LANGUAGES for k in value.keys())
    )


def localize_config(config: Any, lang: str) -> Any:
    """Deep-copy a step config, replacing every localized mapping with its resolved string."""

    if is_localized(config):
        if all(isinstance(v, str) for v in config.values()):
            return resolve(config, lang)
        # e.g. {"en": ["..."], "ru": [...]}: pick the branch, then keep walking.
        branch = config.get(lang, config.get(DEFAULT_LANG, next(iter(config.values()))))
        return localize_config(branch, lang)
    if isinstance(config, Mapping):
        return {k: localize_config(v, lang) for k, v in config.items()}
    if isinstance(config, list):
        return [localize_config(v, lang) for v in config]
    return config
