import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from api.config import Config
from tests.helpers import SHEETS_URL


@pytest.fixture
def config():
    return Config(
        sheets_url=SHEETS_URL,
        sheets_secret="s3cr3t-sheets",
        bot_token="123:bot-token",
        webhook_secret="hook-secret",
        webapp_url="https://mini.example.com/app",
    )
