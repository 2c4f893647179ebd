from collections.abc import Iterator

import pytest
import structlog

from tinker_runner.logs import setup_logging


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    yield
    structlog.reset_defaults()
    setup_logging()
