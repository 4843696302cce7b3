"""Output helpers shared by CLI commands."""

from __future__ import annotations

import json
import sys
from typing import Any


def output_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def output_error(message: str) -> None:
    """Print error message to stderr."""
    print(f"❌ {message}", file=sys.stderr)
