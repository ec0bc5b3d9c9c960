"""
Test Utilities
==============

Common utilities and helpers for testing.
"""

from .helpers import *
