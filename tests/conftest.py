"""Global pytest configuration."""

from __future__ import annotations

import asyncio
import inspect
import os

import pytest

# Keep a developer's .env token out of tests (load_dotenv never overrides).
os.environ.setdefault("GITHUB_TOKEN", "")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):  # type: ignore[override]
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        testargs = {
            name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames
        }
        asyncio.run(pyfuncitem.obj(**testargs))
        return True
    return None


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "asyncio: mark test as requiring asyncio support")
