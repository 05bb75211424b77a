from pathlib import Path

import pytest

from kappa.interpreter import Interpreter, compile_source


# Most tests either run a program against the prelude (`interp`) or on a bare
# machine with only the builtins (`run`). Each test gets its own interpreter so
# definitions never leak between tests.


@pytest.fixture
def interp():
    return Interpreter()


@pytest.fixture
def bare():
    return Interpreter(prelude=False)


@pytest.fixture
def run():
    def _run(source: str, max_steps: int = 100_000):
        return compile_source(source).run(max_steps)
    return _run


@pytest.fixture(scope="session")
def queens_source():
    return (Path(__file__).parent / "programs" / "queens.lisp").read_text(encoding="utf-8")
