"""Shared test fixtures for nsdeps tests."""

import sys
from pathlib import Path

# Add src to path so tests can import nsdeps
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
