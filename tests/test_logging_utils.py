from __future__ import annotations

import logging

import pytest

from archbundle.logging_utils import configure_logging, resolve_level


@pytest.fixture
def restore_root_logger():
    root_logger = logging.getLogger()
    previous = list(root_logger.handlers)
    previous_level = root_logger.level
    yield root_logger
    for handler in list(root_logger.handlers):
        if handler not in previous:
            root_logger.removeHandler(handler)
            handler.close()
    root_logger.setLevel(previous_level)


def test_configure_logging_writes_file(tmp_path, restore_root_logger):
    log_file = tmp_path / "logs" / "archbundle.log"

    logger = configure_logging(log_file, level="debug")
    logger.getChild("assemble").info("assemble.done slices=%s", 2)
    for handler in restore_root_logger.handlers:
        handler.flush()

    text = log_file.read_text(encoding="utf-8")
    assert "| INFO | archbundle.assemble | assemble.done slices=2" in text
    assert logger.level == logging.DEBUG


def test_repeated_configuration_replaces_own_handlers(tmp_path, restore_root_logger):
    before = len(restore_root_logger.handlers)

    configure_logging(tmp_path / "a.log")
    configure_logging(tmp_path / "b.log")

    assert len(restore_root_logger.handlers) == before + 2


def test_resolve_level():
    assert resolve_level("warning") == logging.WARNING
    assert resolve_level(logging.ERROR) == logging.ERROR
    with pytest.raises(ValueError):
        resolve_level("chatty")
