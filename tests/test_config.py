import logging
from pathlib import Path

import pytest

from kappa.config import (
    get_gc_threshold,
    get_prelude_path,
    get_step_limit,
    int_from_env,
    paths_from_env,
)
from kappa.errors import KappaStepLimitError
from kappa.interpreter import Interpreter, compile_source
from kappa.vm import Machine


def test_defaults(monkeypatch):
    for var in ("KAPPA_GC_THRESHOLD", "KAPPA_STEP_LIMIT", "KAPPA_PRELUDE_PATH", "KAPPA_DISASM"):
        monkeypatch.delenv(var, raising=False)
    assert get_gc_threshold() == 4096
    assert get_step_limit() is None
    assert get_prelude_path().name == "std.lisp"
    assert get_prelude_path().is_file()


def test_gc_threshold_from_env(monkeypatch):
    monkeypatch.setenv("KAPPA_GC_THRESHOLD", "32")
    assert get_gc_threshold() == 32
    assert Machine().gc_threshold == 32
    assert Machine(gc_threshold=0).gc_threshold == 0


@pytest.mark.parametrize("raw", ["lots", "-1", "1.5"])
def test_invalid_integers_are_rejected(monkeypatch, raw):
    monkeypatch.setenv("KAPPA_GC_THRESHOLD", raw)
    with pytest.raises(ValueError) as excinfo:
        get_gc_threshold()
    assert "KAPPA_GC_THRESHOLD" in str(excinfo.value)


def test_blank_integer_uses_default(monkeypatch):
    monkeypatch.setenv("KAPPA_STEP_LIMIT", "  ")
    assert int_from_env("KAPPA_STEP_LIMIT", 7) == 7


def test_step_limit_from_env(monkeypatch):
    monkeypatch.setenv("KAPPA_STEP_LIMIT", "500")
    interp = Interpreter(prelude=False)
    assert interp.step_limit == 500
    with pytest.raises(KappaStepLimitError):
        interp.eval("(define (loop) (loop)) (loop)")


def test_explicit_step_limit_wins(monkeypatch):
    monkeypatch.setenv("KAPPA_STEP_LIMIT", "500")
    assert Interpreter(prelude=False, step_limit=10).step_limit == 10


def test_paths_from_env(monkeypatch, tmp_path):
    monkeypatch.delenv("KAPPA_PRELUDE_PATH", raising=False)
    assert paths_from_env("KAPPA_PRELUDE_PATH", ["a"]) == [Path("a")]
    monkeypatch.setenv("KAPPA_PRELUDE_PATH", str(tmp_path))
    assert paths_from_env("KAPPA_PRELUDE_PATH", ["a"]) == [tmp_path]
    assert get_prelude_path() == tmp_path / "std.lisp"


def test_disassembly_is_logged_when_enabled(monkeypatch, caplog):
    monkeypatch.setenv("KAPPA_DISASM", "1")
    with caplog.at_level(logging.INFO, logger="kappa.interpreter"):
        compile_source("(+ 1 2)")
    assert "CALL_PRIMITIVE + argc=2" in caplog.text


def test_disassembly_is_quiet_by_default(monkeypatch, caplog):
    monkeypatch.delenv("KAPPA_DISASM", raising=False)
    with caplog.at_level(logging.INFO, logger="kappa.interpreter"):
        compile_source("(+ 1 2)")
    assert "CALL_PRIMITIVE" not in caplog.text
