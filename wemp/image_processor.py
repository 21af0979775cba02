"""Pull image references out of agent replies.

The channel can't render markdown images, so image links are cut out of the
text and delivered as separate image messages instead.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from urllib.parse import urlsplit

_IMAGE_EXT = r"\.(?:png|jpg|jpeg|gif|webp)"

# Data URLs: ![alt](data:image/...;base64,...) and bare
_DATA_URL_PATTERNS = (
    re.compile(r"!\[.*?\]\((data:image/[^;]+;base64,[A-Za-z0-9+/=]+)\)", re.IGNORECASE),
    re.compile(r"(?<!\()(data:image/[^;]+;base64,[A-Za-z0-9+/=]+)(?!\))", re.IGNORECASE),
)

# http(s) URLs ending in an image extension: markdown and bare
_IMAGE_URL_PATTERNS = (
    re.compile(
        rf"!\[.*?\]\((https?://[^\s)]+{_IMAGE_EXT}(?:\?[^\s)]*)?)\)",
        re.IGNORECASE,
    ),
    re.compile(
        rf"(?<!\()(https?://[^\s<>\"']+{_IMAGE_EXT}(?:\?[^\s<>\"']*)?)(?!\))",
        re.IGNORECASE,
    ),
)

_ANY_URL_RE = re.compile(r"https?://[^\s<>\"')\]]+", re.IGNORECASE)

# Image services whose URLs usually carry no file extension
KNOWN_IMAGE_HOSTS = (
    "picsum.photos",
    "unsplash.com",
    "images.unsplash.com",
    "source.unsplash.com",
    "placekitten.com",
    "placehold.co",
    "placeholder.com",
)

_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


@dataclass
class ExtractedImages:
    http_urls: list[str] = field(default_factory=list)
    data_urls: list[str] = field(default_factory=list)


@dataclass
class ProcessedText:
    text: str
    image_urls: list[str] = field(default_factory=list)


def _is_known_image_host(url: str) -> bool:
    try:
        hostname = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return False
    return any(hostname == host or hostname.endswith(f".{host}") for host in KNOWN_IMAGE_HOSTS)


def extract_image_urls(text: str) -> ExtractedImages:
    """Find image URLs in *text*, first occurrence order, duplicates dropped."""
    # dicts keep insertion order and act as ordered sets
    data_urls: dict[str, None] = {}
    http_urls: dict[str, None] = {}

    for pattern in _DATA_URL_PATTERNS:
        for m in pattern.finditer(text):
            data_urls[m.group(1)] = None

    for pattern in _IMAGE_URL_PATTERNS:
        for m in pattern.finditer(text):
            http_urls[m.group(1)] = None

    # Extension-less CDN links from known image hosts
    for m in _ANY_URL_RE.finditer(text):
        url = m.group(0)
        if _is_known_image_host(url):
            http_urls[url] = None

    return ExtractedImages(http_urls=list(http_urls), data_urls=list(data_urls))


def process_images_in_text(text: str) -> ProcessedText:
    """Strip image references from *text*.

    Returns the cleaned text plus every image URL, data URLs first.
    """
    extracted = extract_image_urls(text)
    image_urls = [*extracted.data_urls, *extracted.http_urls]

    processed = text
    # longest first, one URL may be a prefix of another
    for url in sorted(image_urls, key=len, reverse=True):
        escaped = re.escape(url)
        processed = re.sub(rf"!\[[^\]\n]*\]\({escaped}\)", "", processed)
        processed = processed.replace(url, "")

    processed = _EXCESS_NEWLINES_RE.sub("\n\n", processed).strip()
    return ProcessedText(text=processed, image_urls=image_urls)
