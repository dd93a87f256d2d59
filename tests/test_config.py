from __future__ import annotations

import logging
from pathlib import Path

import pytest

from docscan.core.config import DEFAULT_CFG, load_cfg, merge_cfg
from docscan.core.errors import FailureReason, is_recoverable, treat_as_not_found
from docscan.core.logs import configure_logging

SHIPPED = Path(__file__).resolve().parents[1] / "config" / "docscan.yaml"


def test_shipped_yaml_matches_defaults():
    assert load_cfg(SHIPPED) == DEFAULT_CFG


def test_merge_is_one_level_deep_and_does_not_mutate_defaults():
    cfg = merge_cfg({"host": {"timeout_s": 1.5}, "working_max_dim": 800})
    assert cfg["host"]["timeout_s"] == 1.5
    assert cfg["host"]["mode"] == "thread"
    assert cfg["working_max_dim"] == 800
    cfg["canny"]["thresholds"].append([1, 2])
    assert [1, 2] not in DEFAULT_CFG["canny"]["thresholds"]


def test_load_cfg_overrides(tmp_path):
    p = tmp_path / "cfg.yaml"
    p.write_text("live:\n  interval_s: 1.0\ncorner_order: angular\n")
    cfg = load_cfg(p)
    assert cfg["live"] == {"interval_s": 1.0, "poll_s": 0.05}
    assert cfg["corner_order"] == "angular"


def test_load_cfg_rejects_non_mapping(tmp_path):
    p = tmp_path / "cfg.yaml"
    p.write_text("- just\n- a list\n")
    with pytest.raises(ValueError):
        load_cfg(p)
    with pytest.raises(FileNotFoundError):
        load_cfg(tmp_path / "missing.yaml")


def test_failure_reason_helpers():
    assert is_recoverable(FailureReason.NO_DOCUMENT_FOUND)
    assert is_recoverable(FailureReason.TIMEOUT)
    assert not is_recoverable(FailureReason.RUNTIME_UNAVAILABLE)
    assert not is_recoverable(FailureReason.CANCELLED)
    assert treat_as_not_found(FailureReason.TIMEOUT)
    assert not treat_as_not_found(FailureReason.INVALID_FRAME)


def test_configure_logging_writes_logfile(tmp_path):
    logfile = tmp_path / "logs" / "detect.log"
    logger = configure_logging(logging.DEBUG, logfile)
    logging.getLogger("docscan.geometry.detect").debug("[detect] hello")
    for h in logger.handlers:
        h.flush()
    text = logfile.read_text()
    assert "Writing debug output to" in text
    assert "[detect] hello" in text
    # calling again replaces, not stacks, our handlers
    configure_logging(logging.INFO)
    assert sum(getattr(h, "_docscan", False) for h in logger.handlers) == 1
