from __future__ import annotations

import asyncio
import logging
from typing import Callable, List

import pytest

from minic import vfs
from minic.config import RunOptions
from minic.driver import run_source


def execute(source: str, options: RunOptions | None = None) -> str:
    chunks: List[str] = []
    asyncio.run(run_source(source, chunks.append, options=options))
    return "".join(chunks)


@pytest.fixture(autouse=True)
def reset_package_logger():
    yield
    # the CLI installs a handler bound to the captured stderr of its test
    package_logger = logging.getLogger("minic")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def run_c() -> Callable[..., str]:
    """Compile and run a C snippet, returning everything it printed."""
    return execute


@pytest.fixture
def tree() -> vfs.FileSystemNode:
    return vfs.default_tree()


@pytest.fixture
def home() -> List[str]:
    return list(vfs.HOME)
