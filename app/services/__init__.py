"""Service exports."""

from .sources import (
    BuildError,
    SourceLocationError,
    SourcePathError,
    open_manual_source,
)
from .manual_builder import (
    BuildReport,
    BuildSession,
    ManifestError,
    DestinationCollisionError,
    build_manuals,
)
from .languages import (
    LanguageTag,
    InvalidLanguageTagError,
    NoLanguagesError,
    choose_language,
    list_languages,
    parse_language_tag,
)
from . import destination_tree, git_clone, markdown_renderer

__all__ = [
    "BuildError",
    "SourceLocationError",
    "SourcePathError",
    "open_manual_source",
    "BuildReport",
    "BuildSession",
    "ManifestError",
    "DestinationCollisionError",
    "build_manuals",
    "LanguageTag",
    "InvalidLanguageTagError",
    "NoLanguagesError",
    "choose_language",
    "list_languages",
    "parse_language_tag",
    "destination_tree",
    "git_clone",
    "markdown_renderer",
]
