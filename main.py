#!/usr/bin/env python3
"""
Self-hosted CI Runner Upgrade & Rollback Tool

- Upgrade the runner in place (default)
- Restore the latest state backup with --rollback

This script supports running directly from a source checkout that uses a
src/ layout: it adds the local `src/` directory to sys.path before importing.
For production use, prefer installing the project and using the provided
`runner-upgrade` console script.
"""

import os
import sys

# Add src/ to path to import modules directly
REPO_ROOT = os.path.dirname(os.path.abspath(__file__))
SRC_PATH = os.path.join(REPO_ROOT, "src")
if SRC_PATH not in sys.path:
    sys.path.insert(0, SRC_PATH)

from cli import main

if __name__ == "__main__":
    sys.exit(main())
