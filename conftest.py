"""
Pytest configuration: puts src/ on sys.path so tests import modules by name.
"""

import os
import sys

SRC_DIR = os.path.join(os.path.dirname(__file__), "src")

if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)
