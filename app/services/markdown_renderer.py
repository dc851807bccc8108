"""Markdown manual page rendering.

Turns one ``<lang>.md`` file from a source provider into a complete HTML page:

    1. markdown -> HTML fragment (markdown2)
    2. every ``<img>`` reference inlined as a base64 ``data:`` URI; remote
       images are downloaded, local ones read relative to the markdown file
    3. the nearest ``template.html`` (file's own directory first, then each
       parent) rendered with ``language``, ``title`` and ``body``

The page is published at ``.../<lang>/index.html``, dropping a ``languages``
parent directory: ``x/languages/en-US.md`` -> ``x/en-US/index.html``.
"""
from __future__ import annotations

import base64
import posixpath
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

import markdown2  # type: ignore
import requests
from bs4 import BeautifulSoup
from jinja2 import Environment, TemplateError
from markupsafe import Markup

from app import config as app_config
from app.services.sources import (
    MARKDOWN_SUFFIX,
    TEMPLATE_FILE_NAME,
    BuildError,
    SourcePathError,
    SourceProvider,
    join_source_path,
    normalize_source_path,
)
from app.utils.logging import get_logger

LOG = get_logger("markdown_renderer")

FALLBACK_MANUAL_TITLE = "Twomes manual"
LANGUAGES_DIR_NAME = "languages"
INDEX_FILE_NAME = "index.html"
MARKDOWN_EXTRAS = [
    "fenced-code-blocks",
    "tables",
    "strike",
    "task_list",
    "cuddled-lists",
    "link-patterns",
]
# bare URLs in prose; not inside markdown links, images or <...> autolinks
AUTOLINK_PATTERN = re.compile(r"""(?<![<(\['"=])\bhttps?://[^\s<>"']*[^\s<>"'.,;:!?)\]]""")
LINK_PATTERNS = [(AUTOLINK_PATTERN, r"\g<0>")]
_REMOTE_PREFIXES = ("http://", "https://")

_TEMPLATE_ENV = Environment(autoescape=True, keep_trailing_newline=True)


class TemplateNotFoundError(BuildError):
    """Raised when no template.html exists between a markdown file and the root."""


class TemplateRenderError(BuildError):
    """Raised when a template cannot be parsed or rendered."""


class ImageInlineError(BuildError):
    """Raised when an image referenced by a manual cannot be fetched or read."""


class MarkdownDecodeError(BuildError):
    """Raised when a markdown file is not valid UTF-8."""


@dataclass(frozen=True)
class ManualPage:
    language: str
    title: str
    body: str
    html: str
    source_path: str
    destination_path: str


def find_title(markdown_text: str) -> str:
    """Return the ``# `` heading on the first line, or the fallback title."""
    first_line = markdown_text.replace("\r\n", "\n").split("\n", 1)[0]
    if first_line.startswith("# "):
        return first_line[2:].strip()
    return FALLBACK_MANUAL_TITLE


def language_from_file_name(file_name: str) -> str:
    if file_name.endswith(MARKDOWN_SUFFIX):
        return file_name[: -len(MARKDOWN_SUFFIX)]
    return file_name


def page_output_path(destination_file_path: str) -> str:
    """Map a markdown destination path to its ``<lang>/index.html`` path."""
    directory, file_name = posixpath.split(destination_file_path)
    parts = [p for p in directory.split("/") if p and p != "."]
    if parts and parts[-1] == LANGUAGES_DIR_NAME:
        parts.pop()
    return "/".join([*parts, language_from_file_name(file_name), INDEX_FILE_NAME])


def find_template(provider: SourceProvider, file_path: str) -> str:
    """Return the path of the template closest to ``file_path``."""
    directory = posixpath.dirname(normalize_source_path(file_path))
    while True:
        candidate = join_source_path(directory or ".", TEMPLATE_FILE_NAME)
        if provider.is_file(candidate):
            return candidate
        if directory in ("", "."):
            raise TemplateNotFoundError(f"template file could not be found for {file_path}")
        directory = posixpath.dirname(directory)


def render_markdown(markdown_text: str) -> str:
    return str(markdown2.markdown(markdown_text, extras=MARKDOWN_EXTRAS, link_patterns=LINK_PATTERNS))


def image_extension(source: str) -> str:
    path = urlsplit(source).path if source.startswith(_REMOTE_PREFIXES) else source
    return posixpath.splitext(path)[1].lstrip(".")


def read_image(source: str, provider: SourceProvider, markdown_path: str, timeout: Optional[float] = None) -> bytes:
    if source.startswith(_REMOTE_PREFIXES):
        effective_timeout = timeout if timeout is not None else app_config.image_fetch_timeout()
        try:
            resp = requests.get(source, timeout=effective_timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise ImageInlineError(f"error fetching image {source} for {markdown_path}: {exc}") from exc
        return resp.content

    relative_path = posixpath.join(posixpath.dirname(markdown_path), source)
    try:
        return provider.read_bytes(relative_path)
    except (OSError, SourcePathError) as exc:
        raise ImageInlineError(f"error reading image {source} for {markdown_path}: {exc}") from exc


def inline_images(html: str, provider: SourceProvider, markdown_path: str, timeout: Optional[float] = None) -> str:
    """Replace every image source in ``html`` with an embedded data URI."""
    if "<img" not in html:
        return html
    soup = BeautifulSoup(html, "html.parser")
    for img in soup.find_all("img"):
        source = img.get("src")
        if not source or source.startswith("data:"):
            continue
        data = read_image(source, provider, markdown_path, timeout=timeout)
        encoded = base64.b64encode(data).decode("ascii")
        img["src"] = f"data:image/{image_extension(source)};base64,{encoded}"
    return str(soup)


def render_template(template_text: str, language: str, title: str, body: str) -> str:
    try:
        template = _TEMPLATE_ENV.from_string(template_text)
        return template.render(language=language, title=title, body=Markup(body))
    except TemplateError as exc:
        raise TemplateRenderError(str(exc)) from exc


def render_page(provider: SourceProvider, file_path: str, image_timeout: Optional[float] = None) -> ManualPage:
    """Render the markdown file at ``file_path`` into a full HTML page."""
    try:
        markdown_text = provider.read_bytes(file_path).decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise MarkdownDecodeError(f"{file_path} is not valid UTF-8") from exc

    body = inline_images(render_markdown(markdown_text), provider, file_path, timeout=image_timeout)

    template_path = find_template(provider, file_path)
    try:
        template_text = provider.read_bytes(template_path).decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise TemplateRenderError(f"{template_path} is not valid UTF-8") from exc

    language = language_from_file_name(posixpath.basename(file_path))
    title = find_title(markdown_text)
    html = render_template(template_text, language=language, title=title, body=body)
    destination = page_output_path(provider.destination_path(file_path))
    LOG.debug("rendered %s with %s -> %s", file_path, template_path, destination)
    return ManualPage(
        language=language,
        title=title,
        body=body,
        html=html,
        source_path=file_path,
        destination_path=destination,
    )


__all__ = [
    "FALLBACK_MANUAL_TITLE",
    "ManualPage",
    "TemplateNotFoundError",
    "TemplateRenderError",
    "ImageInlineError",
    "MarkdownDecodeError",
    "find_title",
    "find_template",
    "page_output_path",
    "language_from_file_name",
    "render_markdown",
    "inline_images",
    "render_template",
    "render_page",
]
