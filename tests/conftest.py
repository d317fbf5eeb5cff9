"""
Pytest configuration and fixtures for cono tests.
"""

import os
import sys

import pytest

# Add repository root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from interpreter import Interpreter
from registry import build_default_registry


@pytest.fixture
def registry():
    return build_default_registry()


@pytest.fixture
def trace():
    return []


@pytest.fixture
def interp(registry, trace):
    return Interpreter(registry, output_sink=trace.append)
