from __future__ import annotations

import os
import shutil
from collections.abc import Generator
from pathlib import Path
from uuid import uuid4

import pytest

ARTIFACTS_DIR = Path("pytest_artifacts")

os.environ.setdefault("CASENOTES_DATA_DIR", str((ARTIFACTS_DIR / "data").resolve()))


@pytest.fixture
def tmp_path() -> Generator[Path, None, None]:
    ARTIFACTS_DIR.mkdir(parents=True, exist_ok=True)
    path = ARTIFACTS_DIR / uuid4().hex
    path.mkdir(parents=True, exist_ok=True)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
