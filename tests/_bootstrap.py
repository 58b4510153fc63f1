"""Test helper that normalizes sys.path and environment defaults."""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


_SCRATCH_DIR = Path(tempfile.mkdtemp(prefix="lark-user-auth-tests-"))

_DEFAULT_ENV_VARS: dict[str, str] = {
    "LARK_TOKEN_STORE": str(_SCRATCH_DIR / "tokens.json"),
    "LARK_OAUTH_OPEN_BROWSER": "false",
}

for key, value in _DEFAULT_ENV_VARS.items():
    os.environ.setdefault(key, value)
