"""Root conftest: fixes the test environment before signaling_service.config is imported."""
from __future__ import annotations

import os
from pathlib import Path


def _env_file(path: Path) -> dict[str, str]:
    if not path.is_file():
        return {}
    entries = [
        line.split("=", 1)
        for line in path.read_text().splitlines()
        if "=" in line and not line.lstrip().startswith("#")
    ]
    return {key.strip(): value.strip() for key, value in entries}


for _key, _value in _env_file(Path(__file__).with_name(".env.test")).items():
    os.environ.setdefault(_key, _value)
