"""Language catalog and locale matching for built manuals.

A built manual directory holds one sub-directory per language
(``.../installation/generic/en-US/index.html``). The catalog lists those
directories as language tags; the matcher picks one for a request's
``Accept-Language`` header, preferring the configured fallback language
whenever the client expresses no usable preference.

Tag validation relies on Babel/CLDR data, header parsing on werkzeug.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Sequence, Union

from babel import Locale, UnknownLocaleError
from babel.core import parse_locale
from werkzeug.datastructures import LanguageAccept
from werkzeug.http import parse_accept_header

from app.utils.logging import get_logger

LOG = get_logger("languages")


class InvalidLanguageTagError(ValueError):
    """Raised when a string is not a usable IETF language tag."""


class NoLanguagesError(LookupError):
    """Raised when a manual directory holds no language directories."""


@dataclass(frozen=True)
class LanguageTag:
    language: str
    script: Optional[str] = None
    territory: Optional[str] = None
    variant: Optional[str] = None
    # spelling the tag was parsed from, e.g. the directory name on disk
    source: str = field(default="", compare=False, repr=False)

    def __str__(self) -> str:
        variant = self.variant.lower() if self.variant else None
        return "-".join(p for p in (self.language, self.script, self.territory, variant) if p)

    @property
    def directory_name(self) -> str:
        return self.source or str(self)

    @property
    def primary(self) -> str:
        return self.language


@lru_cache(maxsize=1)
def _known_territories() -> FrozenSet[str]:
    return frozenset(str(code).upper() for code in Locale("en").territories)


@lru_cache(maxsize=1)
def _known_scripts() -> FrozenSet[str]:
    return frozenset(str(code) for code in Locale("en").scripts)


@lru_cache(maxsize=512)
def _language_exists(language: str) -> bool:
    try:
        Locale(language)
    except (UnknownLocaleError, ValueError):
        return False
    return True


def parse_language_tag(raw: str) -> LanguageTag:
    """Parse ``raw`` (``en-US``, ``nl``, ``sr-Latn-RS``) into a canonical tag."""
    value = (raw or "").strip().replace("_", "-")
    if not value:
        raise InvalidLanguageTagError("empty language tag")
    if not all(ch.isascii() and (ch.isalnum() or ch == "-") for ch in value):
        raise InvalidLanguageTagError(f"{raw!r} is not a language tag")
    try:
        parts = parse_locale(value, sep="-")
    except ValueError as exc:
        raise InvalidLanguageTagError(f"{raw!r} is not a language tag") from exc
    language, territory, script, variant = parts[:4]
    if not _language_exists(language):
        raise InvalidLanguageTagError(f"{raw!r} has unknown language {language!r}")
    if territory and territory not in _known_territories():
        raise InvalidLanguageTagError(f"{raw!r} has unknown region {territory!r}")
    if script and script not in _known_scripts():
        raise InvalidLanguageTagError(f"{raw!r} has unknown script {script!r}")
    return LanguageTag(
        language=language,
        script=script,
        territory=territory,
        variant=variant,
        source=(raw or "").strip(),
    )


def list_languages(root: Union[str, Path], directory: str) -> List[LanguageTag]:
    """Return the language tags of the sub-directories of ``root/directory``.

    Entries that are not directories or not language tags are skipped.
    FileNotFoundError is raised when the directory does not exist; other
    listing failures propagate as OSError.
    """
    base = Path(root)
    rel = directory.strip("/")
    target = base.joinpath(*rel.split("/")) if rel else base
    try:
        children = sorted(target.iterdir(), key=lambda p: p.name)
    except NotADirectoryError as exc:
        raise FileNotFoundError(str(target)) from exc

    tags: List[LanguageTag] = []
    for child in children:
        if not child.is_dir():
            continue
        try:
            tags.append(parse_language_tag(child.name))
        except InvalidLanguageTagError:
            continue
    return tags


def prioritize_fallback(options: Sequence[LanguageTag], fallback: Optional[LanguageTag]) -> List[LanguageTag]:
    """Move ``fallback`` to the front when available, keeping the others' order."""
    ordered = list(options)
    if fallback is not None and fallback in ordered:
        # move the listed tag, which carries the on-disk spelling
        ordered.insert(0, ordered.pop(ordered.index(fallback)))
    return ordered


def _primary_language_match(accept: LanguageAccept, matches: List[str]) -> Optional[str]:
    # en-GB accepted, only en-US offered: same language is still a match
    for client_value, quality in accept:
        if quality <= 0 or client_value == "*":
            continue
        client_primary = client_value.replace("_", "-").split("-", 1)[0].lower()
        for candidate in matches:
            if candidate.split("-", 1)[0].lower() == client_primary:
                return candidate
    return None


def choose_language(
    options: Sequence[LanguageTag],
    fallback: Optional[LanguageTag],
    accept_language: Optional[str],
) -> str:
    """Pick the language to serve from ``options`` for an Accept-Language header.

    Returns the directory name of the chosen tag. Without a usable client
    preference the first option is returned, which is the fallback whenever
    the fallback is one of the options.
    """
    ordered = prioritize_fallback(options, fallback)
    if not ordered:
        raise NoLanguagesError("no languages available")
    by_tag: Dict[str, LanguageTag] = {}
    for tag in ordered:
        by_tag.setdefault(str(tag), tag)
    matches = list(by_tag)
    accept = parse_accept_header(accept_language or "", LanguageAccept)
    best = accept.best_match(matches)
    if best is None:
        best = _primary_language_match(accept, matches)
    return by_tag[best or matches[0]].directory_name


def negotiate_language(
    root: Union[str, Path],
    directory: str,
    fallback: Optional[LanguageTag],
    accept_language: Optional[str],
) -> str:
    """List the languages under ``directory`` and choose one for the client."""
    options = list_languages(root, directory)
    if not options:
        raise NoLanguagesError(f"no language directories in {directory}")
    chosen = choose_language(options, fallback, accept_language)
    LOG.debug("negotiated %s for %s (accept=%r)", chosen, directory, accept_language)
    return chosen


__all__ = [
    "InvalidLanguageTagError",
    "NoLanguagesError",
    "LanguageTag",
    "parse_language_tag",
    "list_languages",
    "prioritize_fallback",
    "choose_language",
    "negotiate_language",
]
