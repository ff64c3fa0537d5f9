"""Test configuration for repo-level tests."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC_PATHS = (
    ROOT / "libs" / "offload_contract" / "src",
    ROOT / "services" / "offload-broker" / "src",
)
for src_path in SRC_PATHS:
    if str(src_path) not in sys.path:
        sys.path.insert(0, str(src_path))
