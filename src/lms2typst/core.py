"""Shared configuration, logging and errors for lms2typst."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import soupsieve

LOG = logging.getLogger("lms2typst")

EXIT_INVALID_ARGS = 6
EXIT_OUTPUT = 7
EXIT_NO_CONTENT = 8
EXIT_COMPILE = 9

LMS_URL_ENV = "MOODLE_URL"
TYPST_BIN_ENV = "LMS2TYPST_TYPST_BIN"
CACHE_TTL_ENV = "LMS2TYPST_CACHE_TTL"

DEFAULT_LMS_URL = "https://mylms.vossie.net"
DEFAULT_TYPST_BIN = "typst"
DEFAULT_CACHE_TTL = 3600

KORTEXT_PHRASES = [
    "Sign in to Kortext",
    "Open book in new window",
    "You will only be able to access the book on Kortext",
    "kortext.com",
    "launchReader",
    "emailKortextSupport",
]
PRESCRIBED_READING_PHRASES = [
    "Prescribed Reading",
]
CONTAINER_CLASSES = [
    "no-overflow",
    "box",
    "generalbox",
    "prescribed-reading",
]
NAVIGATION_SELECTORS = [
    "nav",
    ".navigation",
    ".breadcrumb",
    "#page-header",
    ".modified",
    ".activity-navigation",
]


class ExportError(Exception):
    """Raised when an export request has nothing left to typeset."""


class FetchError(Exception):
    """Raised by prefetch when upstream content cannot be obtained."""


@dataclass
class SanitizerConfig:
    kortext_phrases: List[str] = field(default_factory=lambda: list(KORTEXT_PHRASES))
    prescribed_reading_phrases: List[str] = field(default_factory=lambda: list(PRESCRIBED_READING_PHRASES))
    container_classes: List[str] = field(default_factory=lambda: list(CONTAINER_CLASSES))
    navigation_selectors: List[str] = field(default_factory=lambda: list(NAVIGATION_SELECTORS))
    # Containers larger than this are never removed by phrase matching.
    max_container_bytes: int = 50_000
    max_empty_paragraph_bytes: int = 512
    lms_url: str = DEFAULT_LMS_URL

    @property
    def denylist(self) -> List[str]:
        return [*self.kortext_phrases, *self.prescribed_reading_phrases]


def get_lms_url(default: str = DEFAULT_LMS_URL) -> str:
    raw = (os.environ.get(LMS_URL_ENV) or "").strip()
    return raw.rstrip("/") or default


def get_typst_bin(default: str = DEFAULT_TYPST_BIN) -> str:
    raw = (os.environ.get(TYPST_BIN_ENV) or "").strip()
    return raw or default


def get_cache_ttl(default: int = DEFAULT_CACHE_TTL) -> int:
    raw = (os.environ.get(CACHE_TTL_ENV) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        LOG.warning("Ignoring invalid %s=%r", CACHE_TTL_ENV, raw)
        return default
    return value if value > 0 else default


def default_config() -> SanitizerConfig:
    return SanitizerConfig(lms_url=get_lms_url())


def write_config_file(path: Path, config: Optional[SanitizerConfig] = None) -> None:
    cfg = config or SanitizerConfig()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(cfg), ensure_ascii=False, indent=2) + "\n", encoding="utf-8")


def load_config_file(path: Path) -> SanitizerConfig:
    try:
        data_raw = json.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:
        raise ValueError(f"Unable to read config file {path}: {exc}") from exc
    if not isinstance(data_raw, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")

    known = {f.name: f for f in fields(SanitizerConfig)}
    unknown = sorted(set(data_raw) - set(known))
    if unknown:
        raise ValueError(f"Config file {path} has unknown keys: {', '.join(unknown)}")

    values: Dict[str, Any] = {}
    for key, value in data_raw.items():
        if key.startswith("max_"):
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ValueError(f"Config file {path} key {key} must be a positive integer")
        elif key == "lms_url":
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"Config file {path} key {key} must be a non-empty string")
            value = value.strip().rstrip("/")
        else:
            if not isinstance(value, list) or not all(isinstance(item, str) and item.strip() for item in value):
                raise ValueError(f"Config file {path} key {key} must be a list of non-empty strings")
            value = [item.strip() for item in value]
            if key == "navigation_selectors":
                for item in value:
                    try:
                        soupsieve.compile(item)
                    except soupsieve.SelectorSyntaxError as exc:
                        raise ValueError(f"Config file {path} key {key} has invalid selector {item!r}: {exc}") from exc
        values[key] = value

    values.setdefault("lms_url", get_lms_url())
    return SanitizerConfig(**values)


def _resolve_log_level(verbose: bool, debug: bool) -> int:
    return logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)


def _configure_lms2typst_logger(level: int) -> None:
    LOG.setLevel(level)
    LOG.propagate = False
    if not LOG.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        handler.setLevel(level)
        LOG.addHandler(handler)
    else:
        for handler in LOG.handlers:
            handler.setLevel(level)
            if handler.formatter is None:
                handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))


def setup_logging(verbose: bool, debug: bool) -> None:
    level = _resolve_log_level(verbose, debug)
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    _configure_lms2typst_logger(level)


def safe_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8", newline="\n")
