"""Test configuration: make custom_components importable from the repo root."""

import sys
from pathlib import Path

# Running from a checkout without `pip install -e .` still resolves
# custom_components.solar_plugs.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
