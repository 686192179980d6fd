from pathlib import Path

import pytest

TEMPLATES_DIR = Path(__file__).resolve().parent / "workflow-templates"


@pytest.fixture
def templates_dir():
    return TEMPLATES_DIR
