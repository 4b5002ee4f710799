"""
Shared fixtures: a scripted stand-in for ProcessRunner.
"""

import pytest

from initio.models import ProcessResult


class FakeRunner:
    """
    Records invocations and replays scripted results.

    Rules are matched in registration order against the joined command
    line. Each rule replays its results in order and repeats the last one.
    A result may be an exception instance (raised) or a callable taking
    (executable, arguments, cancel) and returning a result.
    """

    def __init__(self, default=None):
        self.calls = []
        self.rules = []
        self.default = default if default is not None else ProcessResult(1, "", "")

    def on(self, fragment, *results):
        self.rules.append([fragment, list(results)])
        return self

    def run(self, executable, arguments, timeout=None, cancel=None):
        self.calls.append({
            "executable": executable,
            "arguments": list(arguments),
            "timeout": timeout,
        })
        command_line = " ".join([executable, *arguments])
        result = self.default
        for fragment, results in self.rules:
            if fragment in command_line and results:
                result = results.pop(0) if len(results) > 1 else results[0]
                break
        if callable(result) and not isinstance(result, ProcessResult):
            result = result(executable, arguments, cancel)
        if isinstance(result, Exception):
            raise result
        return result

    def commands(self, fragment=""):
        """Joined command lines of recorded calls containing fragment."""
        lines = [" ".join([c["executable"], *c["arguments"]]) for c in self.calls]
        return [line for line in lines if fragment in line]


@pytest.fixture
def fake_runner():
    return FakeRunner()
