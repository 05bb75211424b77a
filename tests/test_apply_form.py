import pytest

from kappa.compiler import Opcode
from kappa.errors import KappaArityError, KappaCompileError, KappaRuntimeError
from kappa.interpreter import compile_source
from kappa.types.expr import make_list
from kappa.types.lambda_fn import Closure


# -----------------------------
# Apply form basic behaviors
# -----------------------------

def test_apply_builtin_plus_with_list(run):
    # (apply + (cons 1 (cons 2 '()))) => 3
    assert run("(apply + (cons 1 (cons 2 '())))") == 3


def test_apply_with_quoted_list(run):
    assert run("(apply + '(1 2 3 4 5))") == 15


def test_apply_lambda_defined_via_define(run):
    src = """
    (define add2 (lambda (a b) (+ a b)))
    (apply add2 '(10 20))
    """
    assert run(src) == 30


def test_apply_to_rest_parameters(run):
    assert run("(apply (lambda (. xs) xs) '(1 2 3))") == make_list([1.0, 2.0, 3.0])


def test_apply_empty_list(run):
    assert run("(apply (lambda () 7) '())") == 7
    assert run("(apply + '())") == 0


def test_apply_checks_closure_arity(run):
    with pytest.raises(KappaArityError):
        run("(apply (lambda (a b) a) '(1))")


def test_failed_apply_leaves_stack_untouched():
    machine = compile_source("(apply (lambda (a b) a) '(1))")
    with pytest.raises(KappaArityError):
        machine.run()
    frame = machine.frames[-1]
    assert frame.chunk[frame.ip].op == Opcode.APPLY
    assert len(machine.stack) == 2
    assert isinstance(machine.stack[0], Closure)
    assert machine.stack[1] == make_list([1.0])


def test_apply_requires_a_list(run):
    with pytest.raises(KappaRuntimeError) as excinfo:
        run("(apply + 1)")
    assert "apply expects a list of arguments" in str(excinfo.value)


def test_apply_form_arity_is_static(run):
    with pytest.raises(KappaCompileError) as excinfo:
        run("(apply +)")
    assert excinfo.value.message == "apply expects 2 args, but found: 1"


def test_apply_with_prelude_list(interp):
    assert interp.eval("(apply + (list 1 2 3))") == 6
