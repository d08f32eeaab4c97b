"""Tests for configuration and logging setup."""

import logging

import pytest
import tapegrad as tg


class TestConfig:

    def test_defaults(self):
        cfg = tg.Config()
        assert cfg.default_dtype == tg.float32
        assert cfg.log_level == 'WARNING'
        assert cfg.dispose_intermediate_gradients

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv('TAPEGRAD_DEFAULT_DTYPE', 'float64')
        monkeypatch.setenv('TAPEGRAD_LOG_LEVEL', 'debug')
        monkeypatch.setenv('TAPEGRAD_DISPOSE_INTERMEDIATE', 'no')
        cfg = tg.Config.from_env()
        assert cfg.default_dtype == tg.float64
        assert cfg.log_level == 'DEBUG'
        assert not cfg.dispose_intermediate_gradients

    def test_bad_dtype_name(self, monkeypatch):
        monkeypatch.setenv('TAPEGRAD_DEFAULT_DTYPE', 'float128')
        with pytest.raises(ValueError):
            tg.Config.from_env()

    def test_default_dtype_applies_to_factories(self):
        tg.set_config(tg.get_config().updated(default_dtype=tg.float64))
        assert tg.ones(2).dtype == tg.float64
        assert tg.tensor([1.0]).dtype == tg.float64

    def test_set_config_returns_previous(self):
        first = tg.get_config()
        second = first.updated(log_level='INFO')
        assert tg.set_config(second) is first
        assert tg.get_config() is second


class TestLogging:

    def test_level_from_argument(self):
        logger = tg.get_logger('DEBUG')
        assert logger.name == 'tapegrad'
        assert logger.level == logging.DEBUG
        tg.get_logger('WARNING')

    def test_backward_logs_at_debug(self, caplog, ab):
        a, b = ab
        with caplog.at_level(logging.DEBUG, logger='tapegrad'):
            with tg.Tape() as tape:
                y = tg.mul(a, b)
            tape.gradient_wrt(y, [a])
        messages = [r.getMessage() for r in caplog.records]
        assert any('recorded' in m for m in messages)
        assert any('gradient_wrt' in m for m in messages)
