"""Tests for logging setup and configuration redaction."""

import logging
import os
import tempfile
import unittest

from logger import LOGGER_NAME, ProgressTracker, redact_config, setup_logging


class TestSetupLogging(unittest.TestCase):
    def tearDown(self):
        logging.getLogger(LOGGER_NAME).handlers.clear()

    def test_verbosity_levels(self):
        """Test -v and -vv map to INFO and DEBUG."""
        self.assertEqual(setup_logging(verbosity=0).level, logging.WARNING)
        self.assertEqual(setup_logging(verbosity=1).level, logging.INFO)
        self.assertEqual(setup_logging(verbosity=3).level, logging.DEBUG)

    def test_explicit_level_wins(self):
        """Test a configured level overrides verbosity."""
        self.assertEqual(setup_logging(verbosity=2, level='error').level, logging.ERROR)

    def test_invalid_level(self):
        """Test unknown level names are rejected."""
        with self.assertRaises(ValueError):
            setup_logging(level='LOUD')

    def test_log_file_handler(self):
        """Test a log file adds a second handler."""
        with tempfile.TemporaryDirectory() as directory:
            logger = setup_logging(log_file=os.path.join(directory, 'export.log'))
            self.assertEqual(len(logger.handlers), 2)
            for handler in logger.handlers:
                handler.close()


class TestRedactConfig(unittest.TestCase):
    def test_token_is_redacted(self):
        """Test a real access token never reaches the log."""
        config = {'chatgpt': {'access_token': 'abc', 'base_url': 'https://chatgpt.com'}}

        redacted = redact_config(config)

        self.assertEqual(redacted['chatgpt']['access_token'], '***REDACTED***')
        self.assertEqual(redacted['chatgpt']['base_url'], 'https://chatgpt.com')
        self.assertEqual(config['chatgpt']['access_token'], 'abc')

    def test_placeholder_is_kept(self):
        """Test an unresolved placeholder is shown as-is."""
        config = {'chatgpt': {'access_token': '${CHATGPT_ACCESS_TOKEN}'}}

        self.assertEqual(redact_config(config)['chatgpt']['access_token'], '${CHATGPT_ACCESS_TOKEN}')


class TestProgressTracker(unittest.TestCase):
    def test_summary_level_follows_failures(self):
        """Test the summary is a warning when some items failed."""
        with self.assertLogs(LOGGER_NAME, level='INFO') as captured:
            with ProgressTracker(total_items=2, item_type='files') as tracker:
                tracker.increment(success=True)
                tracker.increment(success=False)

        self.assertIn('WARNING', captured.output[-1])
        self.assertIn('Files: 1/2 succeeded, 1 failed', captured.output[-1])


if __name__ == '__main__':
    unittest.main()
