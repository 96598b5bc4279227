import shlex
import sys

import pytest

PYTHON = shlex.quote(sys.executable)


def py(code: str) -> str:
    """A command line running a Python snippet with this interpreter."""
    return f"{PYTHON} -c {shlex.quote(code)}"


class FakeInstaller:
    """Installer double returning canned results."""

    def __init__(self, results=(True,)):
        self.results = list(results)
        self.calls = 0

    async def install(self) -> bool:
        self.calls += 1
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


class RestartRecorder:
    def __init__(self):
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return True


@pytest.fixture
def workspace(tmp_path):
    ws = tmp_path / "app"
    ws.mkdir()
    return ws
