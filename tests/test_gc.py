import pytest

from kappa.compiler import Chunk
from kappa.errors import KappaInternalError, KappaUnboundSymbol
from kappa.interpreter import CompilerEnv, compile_source, load_prelude
from kappa.types.environment import GLOBAL_ENV_ID, Environment, EnvironmentArena
from kappa.types.expr import Quoted, make_list
from kappa.types.lambda_fn import Closure
from kappa.types.macro_environment import MacroEnvironment


def closure_over(env_id: int) -> Closure:
    return Closure(Chunk(), (), None, env_id)


@pytest.fixture
def arena():
    return EnvironmentArena()


def test_unreachable_scope_is_collected(arena):
    child = arena.allocate({"x": 1.0}, GLOBAL_ENV_ID)
    assert arena.collect() == 1
    assert child not in arena
    assert GLOBAL_ENV_ID in arena


def test_global_environment_is_never_collected(arena):
    assert arena.collect() == 0
    assert len(arena) == 1


def test_closure_in_global_keeps_its_scope(arena):
    child = arena.allocate({}, GLOBAL_ENV_ID)
    arena.define(GLOBAL_ENV_ID, "f", closure_over(child))
    assert arena.collect() == 0
    assert child in arena


def test_closure_inside_list_keeps_its_scope(arena):
    child = arena.allocate({}, GLOBAL_ENV_ID)
    nested = make_list([1.0, Quoted(make_list([closure_over(child)]))])
    arena.define(GLOBAL_ENV_ID, "xs", nested)
    arena.collect()
    assert child in arena


def test_root_env_keeps_parent_chain(arena):
    outer = arena.allocate({}, GLOBAL_ENV_ID)
    inner = arena.allocate({}, outer)
    other = arena.allocate({}, GLOBAL_ENV_ID)
    assert arena.collect(root_env_ids=[inner]) == 1
    assert outer in arena and inner in arena
    assert other not in arena


def test_root_values_keep_scopes(arena):
    child = arena.allocate({}, GLOBAL_ENV_ID)
    arena.collect(root_values=[closure_over(child)])
    assert child in arena


def test_cycles_are_collected(arena):
    child = arena.allocate({}, GLOBAL_ENV_ID)
    arena.define(child, "self", closure_over(child))
    assert arena.collect() == 1
    assert child not in arena


def test_ids_are_not_reused_after_collection(arena):
    first = arena.allocate({}, GLOBAL_ENV_ID)
    arena.collect()
    assert arena.allocate({}, GLOBAL_ENV_ID) != first


def test_allocate_requires_existing_parent(arena):
    with pytest.raises(KappaInternalError):
        arena.allocate({}, 42)


def test_lookup_walks_parents(arena):
    arena.define(GLOBAL_ENV_ID, "x", 1.0)
    child = arena.allocate({"y": 2.0}, GLOBAL_ENV_ID)
    assert arena.lookup(child, "x") == 1.0
    assert arena.lookup(child, "y") == 2.0
    with pytest.raises(KappaUnboundSymbol):
        arena.lookup(GLOBAL_ENV_ID, "y")


def test_snapshot_is_independent(arena):
    arena.define(GLOBAL_ENV_ID, "x", 1.0)
    copy = arena.snapshot()
    copy.define(GLOBAL_ENV_ID, "x", 2.0)
    assert arena.lookup(GLOBAL_ENV_ID, "x") == 1.0
    assert copy.allocate({}, GLOBAL_ENV_ID) == arena.allocate({}, GLOBAL_ENV_ID)


def test_arena_fills_in_missing_global():
    arena = EnvironmentArena({5: Environment()})
    assert GLOBAL_ENV_ID in arena
    assert arena.allocate({}, GLOBAL_ENV_ID) == 6


# -----------------------------
# Collection while running
# -----------------------------

def peak_arena_size(source: str, gc_threshold: int):
    machine = compile_source(source + "(length (queens 4))", load_prelude())
    machine.gc_threshold = gc_threshold
    peak = len(machine.arena)
    while not machine.halted:
        machine.step()
        peak = max(peak, len(machine.arena))
    return machine.result, peak


def test_collection_bounds_live_environments(queens_source):
    result_without_gc, peak_without_gc = peak_arena_size(queens_source, 0)
    result_with_gc, peak_with_gc = peak_arena_size(queens_source, 16)
    assert result_without_gc == result_with_gc == 2
    assert peak_with_gc * 4 < peak_without_gc


def test_collect_garbage_keeps_running_frames():
    machine = compile_source("(define (f x) (define y (+ x 1)) y) (f 1)")
    machine.gc_threshold = 0
    while len(machine.frames) < 2:
        machine.step()
    machine.collect_garbage()
    assert machine.frames[-1].env_id in machine.arena
    assert machine.run() == 2


def test_finished_program_state_is_pruned():
    machine = compile_source("""
        (define (f) (define x 1) x)
        (define (make) (lambda () 1))
        (f)
        (f)
        (define g (make))
    """)
    machine.gc_threshold = 0
    machine.run()
    assert len(machine.arena) == 4
    env = CompilerEnv.from_machine(machine, MacroEnvironment())
    # only the global scope and the scope captured by g survive
    assert len(env.arena) == 2
    assert compile_source("(g)", env).run() == 1
