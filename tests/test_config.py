import json
import logging

import pytest

import lms2typst.core as core
from lms2typst.core import SanitizerConfig


def test_defaults():
    cfg = SanitizerConfig()
    assert "Sign in to Kortext" in cfg.denylist
    assert "Prescribed Reading" in cfg.denylist
    assert cfg.container_classes == ["no-overflow", "box", "generalbox", "prescribed-reading"]
    assert cfg.max_container_bytes == 50_000
    assert cfg.max_empty_paragraph_bytes == 512
    assert cfg.lms_url == "https://mylms.vossie.net"


def test_defaults_are_independent_copies():
    a = SanitizerConfig()
    a.kortext_phrases.append("extra")
    assert "extra" not in SanitizerConfig().kortext_phrases


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("MOODLE_URL", "https://lms.example.edu/")
    monkeypatch.setenv("LMS2TYPST_TYPST_BIN", "/usr/local/bin/typst")
    monkeypatch.setenv("LMS2TYPST_CACHE_TTL", "120")
    assert core.get_lms_url() == "https://lms.example.edu"
    assert core.default_config().lms_url == "https://lms.example.edu"
    assert core.get_typst_bin() == "/usr/local/bin/typst"
    assert core.get_cache_ttl() == 120


@pytest.mark.parametrize("raw", ["abc", "0", "-5"])
def test_invalid_cache_ttl_falls_back(monkeypatch, raw):
    monkeypatch.setenv("LMS2TYPST_CACHE_TTL", raw)
    assert core.get_cache_ttl() == core.DEFAULT_CACHE_TTL


def test_write_and_load_config(tmp_path):
    target = tmp_path / "conf" / "lms2typst.json"
    core.write_config_file(target)
    data = json.loads(target.read_text(encoding="utf-8"))
    assert data["max_container_bytes"] == 50_000
    assert core.load_config_file(target) == SanitizerConfig()


def test_load_partial_config(tmp_path, monkeypatch):
    monkeypatch.delenv("MOODLE_URL", raising=False)
    target = tmp_path / "partial.json"
    target.write_text(json.dumps({"kortext_phrases": [" Buy now "], "max_container_bytes": 10}), encoding="utf-8")
    cfg = core.load_config_file(target)
    assert cfg.kortext_phrases == ["Buy now"]
    assert cfg.max_container_bytes == 10
    assert cfg.container_classes == SanitizerConfig().container_classes


@pytest.mark.parametrize(
    "payload",
    [
        "not json",
        json.dumps(["a"]),
        json.dumps({"unknown_key": 1}),
        json.dumps({"max_container_bytes": 0}),
        json.dumps({"max_container_bytes": True}),
        json.dumps({"lms_url": ""}),
        json.dumps({"container_classes": ["ok", ""]}),
        json.dumps({"navigation_selectors": "nav"}),
        json.dumps({"navigation_selectors": ["nav", "div["]}),
    ],
)
def test_invalid_config_rejected(tmp_path, payload):
    target = tmp_path / "bad.json"
    target.write_text(payload, encoding="utf-8")
    with pytest.raises(ValueError, match="bad.json"):
        core.load_config_file(target)


def test_setup_logging_levels():
    core.setup_logging(False, False)
    assert core.LOG.level == logging.WARNING
    core.setup_logging(True, False)
    assert core.LOG.level == logging.INFO
    core.setup_logging(True, True)
    assert core.LOG.level == logging.DEBUG
    assert len(core.LOG.handlers) == 1
    assert core.LOG.propagate is False


def test_invalid_selector_named_in_error(tmp_path):
    target = tmp_path / "selectors.json"
    target.write_text(json.dumps({"navigation_selectors": [".breadcrumb", "div["]}), encoding="utf-8")
    with pytest.raises(ValueError, match=r"invalid selector 'div\['"):
        core.load_config_file(target)
