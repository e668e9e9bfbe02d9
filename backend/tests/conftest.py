import os
import tempfile

# Must run before i18n_compare.main is imported: it sets up logging and
# seeds the settings file at import time.
_TMP = tempfile.mkdtemp(prefix="i18n-compare-tests-")
os.environ["LOG_DIR"] = os.path.join(_TMP, "logs")
os.environ["SETTINGS_FILE"] = os.path.join(_TMP, "settings.json")
os.environ["OPENAI_COMPAT_API_KEY"] = "sk-test"

import pytest

from fakes import FakeProvider


@pytest.fixture
def provider():
    """Provider that translates everything as '<target>:<text>' wrapped in quotes."""
    return FakeProvider()
