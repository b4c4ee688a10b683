import asyncio
import inspect
import os
import sys
from pathlib import Path

os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault(
    "JWT_SECRET_KEY",
    "test-secret-key-for-testing-only-do-not-use-in-production-0123456789",
)
# No Redis in unit tests; the runtime falls back to the in-memory registry
os.environ.setdefault("REDIS_URL", "")

import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from tokenauthority.config import Settings  # noqa: E402
from tokenauthority.service.clock import ManualClock  # noqa: E402
from tokenauthority.service.runtime import reset_runtime_for_tests  # noqa: E402
from tokenauthority.service.tokens import TokenAuthority  # noqa: E402
from tokenauthority.storage.memory import MemoryRegistry  # noqa: E402

T0 = 1_700_000_000_000
ACCESS_TTL_MS = 3_600_000
REFRESH_TTL_MS = 1_209_600_000
REDUCED_TTL_MS = 600_000
SECRET = "0123456789abcdef" * 4  # 64 bytes


@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_runtime_for_tests()
    yield
    reset_runtime_for_tests()


@pytest.fixture
def settings():
    return Settings(
        secret_key=SECRET,
        access_token_expiration=ACCESS_TTL_MS,
        refresh_token_expiration=REFRESH_TTL_MS,
        deleted_account_token_expiration=REDUCED_TTL_MS,
        redis_url="",
        test_mode=True,
    )


@pytest.fixture
def clock():
    return ManualClock(T0)


@pytest.fixture
def registry(clock):
    return MemoryRegistry(clock)


@pytest.fixture
def authority(registry, settings, clock):
    return TokenAuthority(registry, settings, clock=clock)


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")
