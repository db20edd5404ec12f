"""
Tests for logging setup.

Scope
- get_logger() naming under the "arbor" root.
- setup() installing exactly one rich handler, at the requested level.
"""
import io
import logging
import unittest
from unittest import TestCase

from rich.console import Console
from rich.logging import RichHandler

from arbor import logs


class LogsTest(TestCase):

    def tearDown(self):
        logger = logging.getLogger(logs.ROOT)
        for handler in logs.LogObjects.handlers:
            logger.removeHandler(handler)
        logs.LogObjects.handlers.clear()
        logger.setLevel(logging.NOTSET)
        logger.propagate = True

    def testNames(self):
        self.assertEqual(logs.get_logger().name, "arbor")
        self.assertEqual(logs.get_logger("flags").name, "arbor.flags")

    def testDebugSetup(self):
        stream = io.StringIO()
        logger = logs.setup(True, console=Console(file=stream, width=200))
        self.assertEqual(logger.level, logging.DEBUG)
        self.assertFalse(logger.propagate)
        logs.get_logger("tree").debug("registered %r", "remote")
        self.assertIn("registered 'remote'", stream.getvalue())

    def testQuietSetup(self):
        stream = io.StringIO()
        logs.setup(console=Console(file=stream, width=200))
        logs.get_logger("tree").debug("hidden detail")
        logs.get_logger("tree").warning("visible warning")
        self.assertNotIn("hidden detail", stream.getvalue())
        self.assertIn("visible warning", stream.getvalue())

    def testSetupReplacesHandler(self):
        logs.setup(console=Console(file=io.StringIO()))
        logger = logs.setup(console=Console(file=io.StringIO()))
        handlers = [handler for handler in logger.handlers if isinstance(handler, RichHandler)]
        self.assertEqual(len(handlers), 1)
        self.assertEqual(len(logs.LogObjects.handlers), 1)


if __name__ == "__main__":
    unittest.main()
