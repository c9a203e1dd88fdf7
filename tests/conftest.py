from collections.abc import Callable
from pathlib import Path

import pytest

from tests.factories import FakeCommand, write_scenario


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def make_command(tmp_path: Path) -> Callable[..., FakeCommand]:
    def _factory(
        steps: list[dict],
        *,
        exit_code: int = 0,
        record: bool = False,
        env: dict[str, str] | None = None,
        ignore_sigterm: bool = False,
    ) -> FakeCommand:
        scenario = write_scenario(
            tmp_path,
            steps,
            exit_code=exit_code,
            record=record,
            ignore_sigterm=ignore_sigterm,
        )
        return FakeCommand(scenario=scenario, env=env)

    return _factory
