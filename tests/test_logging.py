"""
Tests for m365pkg.logging module.

Tests logger implementations including:
- Verbosity levels
- Warnings and errors on stderr
- Global logger selection
- Secret redaction
"""

from __future__ import annotations

import pytest

from m365pkg.logging import (
    DefaultLogger,
    SilentLogger,
    get_global_logger,
    get_logger,
    redact,
    set_global_logger,
)

pytestmark = pytest.mark.unit


class TestDefaultLogger:
    def test_step_always_printed(self, capsys):
        DefaultLogger().step(2, 6, "Editing configuration...")
        assert capsys.readouterr().out == "[2/6] Editing configuration...\n"

    def test_verbose_gated(self, capsys):
        DefaultLogger().verbose("HTTP", "hidden")
        DefaultLogger(verbose=True).verbose("HTTP", "shown")
        assert capsys.readouterr().out == "[HTTP] shown\n"

    def test_debug_implies_verbose(self, capsys):
        logger = DefaultLogger(debug=True)
        logger.verbose("A", "v")
        logger.debug("B", "d")
        assert capsys.readouterr().out == "[A] v\n[B] d\n"

    def test_warning_and_error_on_stderr(self, capsys):
        logger = DefaultLogger()
        logger.warning("PIPELINE", "careful")
        logger.error("PIPELINE", "broken")
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "WARNING: careful" in captured.err
        assert "ERROR: broken" in captured.err


class TestGlobalLogger:
    def test_default_is_silent(self):
        assert isinstance(get_global_logger(), SilentLogger)

    def test_set_global(self):
        logger = get_logger(verbose=True)
        set_global_logger(logger)
        assert get_global_logger() is logger


class TestRedact:
    def test_nested(self):
        data = {
            "client_id": "app",
            "Client_Secret": "s3cr3t",
            "fileEncryptionInfo": {"encryptionKey": "k", "fileDigest": "d"},
            "items": [{"access_token": "t"}],
        }
        assert redact(data) == {
            "client_id": "app",
            "Client_Secret": "***",
            "fileEncryptionInfo": {"encryptionKey": "***", "fileDigest": "d"},
            "items": [{"access_token": "***"}],
        }

    def test_original_untouched(self):
        data = {"client_secret": "s3cr3t"}
        redact(data)
        assert data == {"client_secret": "s3cr3t"}
