import os
import logging
from pathlib import Path

import pytest
from dotenv import load_dotenv

# load test env first
env_path = Path(__file__).resolve().parents[1] / '.env.test'
if env_path.exists():
    load_dotenv(env_path)

os.environ.setdefault('LOG_FILE_ENABLED', 'false')
os.environ.setdefault('REDIS_CACHE_ENABLED', 'false')
os.environ.setdefault('LLM_RETRY_MULTIPLIER', '0')
os.environ.setdefault('LLM_RETRY_MAX_WAIT', '0')

from studyforge.config import get_settings  # noqa: E402
from studyforge.pipeline.usage_limits import InMemoryBilling  # noqa: E402
from studyforge.storage.memory import InMemoryRepository  # noqa: E402
from studyforge.utils import RateLimiter, S3Storage, TaskManager  # noqa: E402
import studyforge.utils.task_manager as tm_mod  # noqa: E402

from tests.fixtures.mock_aws import MockS3Client  # noqa: E402
from tests.fixtures.mock_llm import FakeLLM  # noqa: E402


@pytest.fixture(autouse=True)
def silence_logger(monkeypatch):
    monkeypatch.setattr(logging.getLogger('studyforge'), 'disabled', True)
    yield


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def repo():
    return InMemoryRepository()


@pytest.fixture
def billing():
    return InMemoryBilling()


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def s3_client():
    return MockS3Client()


@pytest.fixture
def storage(s3_client):
    return S3Storage(bucket='studyforge-test', client=s3_client)


@pytest.fixture
def rate_limiter():
    return RateLimiter()


@pytest.fixture
def task_manager(monkeypatch):
    monkeypatch.setattr(tm_mod, 'REDIS_URL', None)
    tm = TaskManager(max_workers=2)
    yield tm
    tm.shutdown(wait=True)
