import pytest

from kappa.errors import KappaCompileError, KappaUnboundSymbol
from kappa.interpreter import compile_source_with_macros
from kappa.reader.parser import parse
from kappa.types.expr import Quoted, make_list
from kappa.types.macro_environment import MacroEnvironment
from kappa.types.symbol import Symbol


def expand(source: str, macros: MacroEnvironment = None):
    macros = macros if macros is not None else MacroEnvironment()
    return macros.macro_expand(parse(source)), macros


def test_expansion_is_identity_without_macros():
    source = "(define (f x) (if x (+ x 1) 'done)) (f 2) '(a b)"
    expanded, _ = expand(source)
    assert expanded == parse(source)


def test_defmacro_is_removed_and_registered():
    expanded, macros = expand("(defmacro (three) 3) (+ (three) 1)")
    assert macros.is_macro(Symbol("three"))
    assert expanded == parse("(+ 3 1)")


def test_macro_builds_code_with_cons():
    expanded, _ = expand("(defmacro (m a) (cons '+ (cons a (cons 2 '())))) (m 5)")
    assert expanded == parse("(+ 5 2)")


def test_call_other_macro_from_macro(run):
    assert run("""
        (defmacro (three) 3)
        (defmacro (add) (three))
        (add)
    """) == 3
    assert run("""
        (defmacro (three) 3)
        (defmacro (add) (cons '+ (cons (three) (cons (three) '()))))
        (add)
    """) == 6


def test_macro_definition_doesnt_leak_out_of_scope(run):
    with pytest.raises(KappaUnboundSymbol) as excinfo:
        run("""
            (lambda () (defmacro (three) 3) ())
            (defmacro (add) '(+ (three) (three)))
            (add)
        """)
    assert str(excinfo.value) == "not found: three"


def test_arguments_are_expanded_first(run):
    source = """
    (defmacro (compile-time-add a b) (+ a b))
    (compile-time-add (compile-time-add 1 2) 2)
    """
    assert run(source) == 5


def test_expansion_is_expanded_again():
    expanded, _ = expand("""
        (defmacro (inc x) (cons '+ (cons x (cons 1 '()))))
        (defmacro (twice x) (cons 'inc (cons (cons 'inc (cons x '())) '())))
        (twice 1)
    """)
    assert expanded == parse("(+ (+ 1 1) 1)")


def test_variadic_macro(run):
    source = """
    (defmacro (add . xs) (cons '+ xs))
    (add 1 2 3 4 5)
    """
    assert run(source) == 15
    assert run("(defmacro (add . xs) (cons '+ xs)) (add 1 2)") == 3


def test_quoted_forms_are_not_expanded():
    expanded, _ = expand("(defmacro (three) 3) '(three) (quote (three))")
    assert expanded[0] == Quoted(make_list([Symbol("three")]))
    assert expanded[1] == parse("(quote (three))")[0]


def test_lambda_parameters_are_not_expanded():
    expanded, _ = expand("(defmacro (x) 1) (lambda (x) (x))")
    assert expanded == parse("(lambda (x) 1)")


def test_macro_arity_error():
    with pytest.raises(KappaCompileError) as excinfo:
        expand("(defmacro (m a b) a) (m 1)")
    assert "wrong number of args, expected 2 (a b), got: (1)" in excinfo.value.message


def test_macro_rest_dot_checked_at_definition():
    with pytest.raises(KappaCompileError) as excinfo:
        expand("(defmacro (m . a b) a)")
    assert excinfo.value.message == "rest-dot can only occur as second-to-last argument, but found: (. a b)"


def test_malformed_defmacro():
    with pytest.raises(KappaCompileError):
        expand("(defmacro m 1)")


def test_runtime_error_in_macro_becomes_compile_error():
    with pytest.raises(KappaCompileError) as excinfo:
        expand("(defmacro (bad) (car 1)) (bad)")
    assert excinfo.value.message.startswith("Error when running macro expansion: ")


def test_macro_body_cannot_see_program_definitions():
    with pytest.raises(KappaCompileError) as excinfo:
        expand("(define helper 1) (defmacro (m) helper) (m)")
    assert "not found: helper" in excinfo.value.message


def test_expand_1_does_not_expand_arguments():
    _, macros = expand("(defmacro (quote-it x) (cons 'quote (cons x '())))")
    (form,) = parse("(quote-it (quote-it 1))")
    assert macros.expand_1(form) == parse("(quote (quote-it 1))")[0]
    (other,) = parse("(f 1)")
    assert macros.expand_1(other) is other


def test_macroexpand_form(run):
    source = """
    (defmacro (m a) (cons '+ (cons a (cons 2 '()))))
    (macroexpand '(m 1))
    """
    assert run(source) == parse("(+ 1 2)")[0]


@pytest.mark.parametrize(
    "source, message",
    [
        ("(macroexpand '(nope 1))", "macro not found: nope"),
        ("(macroexpand 1)", "can't call macroexpand on (macroexpand 1)"),
    ]
)
def test_macroexpand_errors(source, message):
    with pytest.raises(KappaCompileError) as excinfo:
        expand(source)
    assert excinfo.value.message == message


def test_macros_are_returned_for_reuse():
    _, macros = compile_source_with_macros("(defmacro (two) 2) 1")
    assert macros.is_macro(Symbol("two"))
    assert not MacroEnvironment().is_macro(Symbol("two"))
