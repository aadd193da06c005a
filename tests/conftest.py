import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from speechbridge.services.gemini_client import GeminiClient  # noqa: E402


@pytest.fixture(autouse=True)
def reset_gemini_http_client():
    """Never let a pooled client leak between event loops."""
    GeminiClient._http_client = None
    yield
    GeminiClient._http_client = None
