"""
Tests for the dsmkernel package.
"""

from importlib.resources import files
import sys
import unittest


def run():
    loader = unittest.TestLoader()
    test_dir = str(files('dsmkernel').joinpath('tests'))
    suite = loader.discover(test_dir)
    runner = unittest.runner.TextTestRunner()
    ret = not runner.run(suite).wasSuccessful()
    sys.exit(ret)
