"""
Unit tests for logging setup (b2backup/__init__.py).
"""

import logging
from logging.handlers import RotatingFileHandler
from unittest.mock import patch

from b2backup import configure_logging
from b2backup.config import Config


def make_config(**overrides):
    values = dict(key_id='k', application_key='s', bucket_id='b')
    values.update(overrides)
    return Config(**values)


class TestConfigureLogging:

    @patch('b2backup.logging.basicConfig')
    def test_console_only_by_default(self, mock_basic_config):
        configure_logging(make_config())

        kwargs = mock_basic_config.call_args.kwargs
        assert kwargs['level'] == logging.INFO
        assert len(kwargs['handlers']) == 1
        assert isinstance(kwargs['handlers'][0], logging.StreamHandler)

    @patch('b2backup.logging.basicConfig')
    def test_rotating_file_handler_when_log_file_set(self, mock_basic_config, tmp_path):
        log_file = tmp_path / 'logs' / 'b2backup.log'

        configure_logging(make_config(log_file=str(log_file), log_level='DEBUG'))

        kwargs = mock_basic_config.call_args.kwargs
        assert kwargs['level'] == logging.DEBUG
        file_handlers = [h for h in kwargs['handlers'] if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].maxBytes == 10485760
        assert (tmp_path / 'logs').is_dir()
        file_handlers[0].close()

    @patch('b2backup.logging.basicConfig')
    def test_unknown_level_falls_back_to_info(self, mock_basic_config):
        configure_logging(make_config(log_level='LOUD'))

        assert mock_basic_config.call_args.kwargs['level'] == logging.INFO
