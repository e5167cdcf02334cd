import pytest

from anslc.errors import (
    DoubleRelease,
    IllegalTransition,
    NoEvictionCandidate,
    UseAfterExpire,
    UseBeforeDefinition,
    ValueNotFound,
)
from anslc.ir import Label, LogicalBlock, LogicalInstruction, Operation, SizeClass
from anslc.resolver import Resolver, ResolverState, resolve_block
from anslc.values import ValueState


S = Label("s")


def ldi(out, value=0):
    return LogicalInstruction(Operation.LDI, (out,), (), value)


def store(value):
    return LogicalInstruction(Operation.STORE, (), (value,), S)


def op(operation, out, *inputs):
    return LogicalInstruction(operation, (out,), tuple(inputs))


def ret(*inputs):
    return LogicalInstruction(Operation.RET, (), tuple(inputs))


def make(instructions, capacity, nvalues=None, size=SizeClass.BITS32):
    if nvalues is None:
        ids = set()
        for instr in instructions:
            ids.update(instr.inputs)
            ids.update(instr.outputs)
        values = {v: size for v in ids}
    else:
        values = {v: size for v in range(nvalues)}
    return Resolver(instructions, values, capacity=capacity)


def ops(resolution):
    return [instr.operation for instr in resolution.instructions]


def test_chain_reuses_register_without_spills():
    A, B, C = 0, 1, 2
    r = make([ldi(A), op(Operation.NOT, B, A), op(Operation.NOT, C, B), ret(C)], capacity=2)
    result = r.run()
    assert result.spill_count == 0
    assert result.reload_count == 0
    assert Operation.SPILL not in ops(result)
    # Each value dies where the next is produced and takes over its register
    regs = [instr.outputs[0].register for instr in result.instructions[:3]]
    assert regs == [0, 0, 0]
    assert result.max_pressure == 1


def test_dying_inputs_free_registers_in_lifo_order():
    A, B, C = 0, 1, 2
    r = make([ldi(A), ldi(B), op(Operation.ADD, C, A, B), ret(C)], capacity=2)
    result = r.run()
    add = result.instructions[2]
    assert [i.register for i in add.inputs] == [0, 1]
    # A is released first, then B; B's register is on top of the free list
    assert add.outputs[0].register == 1
    assert result.used_registers == [0, 1]


def test_pressure_forces_spill_and_reload():
    A, B, C = 0, 1, 2
    r = make([ldi(A), ldi(B), store(B), ldi(C), store(C), store(A), ret()], capacity=1)
    r.step()
    assert r.pool.value_in(0) == A
    r.step()
    assert r.values.state(A) is ValueState.SPILLED
    assert r.spills.offset_of(A) == 0
    assert r.pool.value_in(0) == B
    assert [i.operation for i in r.output] == [Operation.LDI, Operation.SPILL, Operation.LDI]
    spill = r.output[1]
    assert spill.value_id == A
    assert spill.offset == 0

    result = r.run()
    assert result.spill_count == 1
    assert result.reload_count == 1
    reload = result.instructions[6]
    assert reload.operation is Operation.RELOAD
    assert reload.value_id == A
    assert reload.offset == 0
    assert result.instructions[7].inputs[0].register == reload.outputs[0].register
    assert result.spill_offsets == {}


def test_use_before_definition_fails_the_step():
    A, B, C = 0, 1, 2
    r = make([ldi(A), op(Operation.ADD, C, A, B), ret(C)], capacity=4)
    assert r.step() is ResolverState.RUNNING
    assert r.step() is ResolverState.FAILED
    assert isinstance(r.error, UseBeforeDefinition)
    assert r.error.index == 1
    assert r.error.value_id == B
    assert len(r.output) == 1
    # Failed is terminal
    assert r.step() is ResolverState.FAILED
    assert r.cursor == 1
    with pytest.raises(UseBeforeDefinition):
        r.run()


def test_reference_to_expired_value():
    A, B = 0, 1
    r = make([ldi(A), op(Operation.NOT, B, A), ldi(A), ret(B)], capacity=2)
    r.step()
    r.step()
    assert r.values.state(A) is ValueState.EXPIRED
    assert A not in r.resident
    with pytest.raises(UseAfterExpire) as exc:
        r.run()
    assert exc.value.index == 2
    assert exc.value.value_id == A
    assert exc.value.context['scope'] == '<scope>'
    assert len(r.output) == 2


def test_reload_offsets_follow_the_stack():
    X, Y, Z = 0, 1, 2
    r = make([ldi(X), ldi(Y), ldi(Z), store(Y), store(X), store(Z), ret()], capacity=1)
    result = r.run()
    reloads = [(i.value_id, i.offset) for i in result.instructions if i.operation is Operation.RELOAD]
    # Y sat under Z when Z was spilled to make room for it
    assert reloads == [(Y, 1), (X, 1), (Z, 0)]
    spills = [i.value_id for i in result.instructions if i.operation is Operation.SPILL]
    assert spills == [X, Y, Z]
    assert result.spill_offsets == {}


def test_unknown_value_id():
    r = Resolver([ldi(0), ret(0, 99)], {0: SizeClass.BITS32}, capacity=2)
    with pytest.raises(ValueNotFound) as exc:
        r.run()
    assert exc.value.index == 1
    assert exc.value.value_id == 99


def test_value_produced_twice():
    r = make([ldi(0), ldi(0), ret(0)], capacity=2)
    with pytest.raises(IllegalTransition) as exc:
        r.run()
    assert exc.value.index == 1
    assert exc.value.context is not None


def test_evicts_value_with_furthest_next_use():
    A, B, C = 0, 1, 2
    r = make([ldi(A), ldi(B), ldi(C), store(A), store(B), store(C), ret()], capacity=2)
    for _ in range(3):
        r.step()
    assert r.values.state(B) is ValueState.SPILLED
    assert r.values.state(A) is ValueState.ACTIVE


def test_eviction_tie_goes_to_lowest_id():
    A, B, C, D = 0, 1, 2, 3
    r = make([ldi(A), ldi(B), ldi(C), op(Operation.ADD, D, A, B), store(C), ret(D)], capacity=2)
    for _ in range(3):
        r.step()
    assert r.values.state(A) is ValueState.SPILLED
    assert r.values.state(B) is ValueState.ACTIVE


def test_dead_value_is_discarded_not_spilled():
    A, B, C = 0, 1, 2
    r = make([ldi(A), ldi(B), ldi(C), store(B), store(C), ret()], capacity=2)
    result = r.run()
    assert r.values.state(A) is ValueState.EXPIRED
    assert result.discard_count == 1
    assert result.spill_count == 0
    assert Operation.SPILL not in ops(result)


def test_dead_value_beats_any_live_candidate():
    A, B, C = 0, 1, 2
    r = make([ldi(A), ldi(B), ldi(C), store(B), store(C), ret()], capacity=2)
    r.step()
    r.step()
    assert r.select_victim() == A


def test_operands_are_never_evicted():
    A, B, C = 0, 1, 2
    r = make([ldi(A), ldi(B), op(Operation.ADD, C, A, B), ret(C)], capacity=1)
    with pytest.raises(NoEvictionCandidate) as exc:
        r.run()
    assert exc.value.index == 2
    assert exc.value.value_id == A


def test_empty_pool_has_no_eviction_candidate():
    r = make([ldi(0), ret(0)], capacity=0)
    with pytest.raises(NoEvictionCandidate):
        r.run()


def test_failed_step_emits_no_reload():
    A, B, X, C = 0, 1, 2, 3
    r = Resolver(
        [ldi(A), ldi(B), store(B), op(Operation.ADD, C, A, X), ret(C)],
        {v: SizeClass.BITS16 for v in range(4)},
        capacity=1,
    )
    with pytest.raises(UseBeforeDefinition):
        r.run()
    assert [i.operation for i in r.output] == [
        Operation.LDI, Operation.SPILL, Operation.LDI, Operation.STORE,
    ]
    assert Operation.RELOAD not in [i.operation for i in r.output]


def test_invariants_hold_after_every_step():
    values = 8
    instrs = [ldi(v, v) for v in range(values)]
    acc = 0
    for v in range(1, values):
        out = values + v - 1
        instrs.append(op(Operation.ADD, out, acc, v))
        acc = out
    instrs.append(ret(acc))
    r = make(instrs, capacity=3)
    while r.state is ResolverState.RUNNING:
        r.step()
        assert r.check_invariants() == []
        assert r.pool.bound_count <= r.pool.capacity
        for value in r.values:
            located = (value.id in r.resident) + (value.id in r.spills)
            assert located == (1 if value.state in (ValueState.ACTIVE, ValueState.SPILLED) else 0)
    assert r.state is ResolverState.DONE
    result = r.result()
    assert result.spill_count > 0
    assert result.max_pressure == 3
    assert r.spills.offsets() == {}


def test_lifecycle_error_names_the_value_being_released():
    r = make([ldi(0), ret(0)], capacity=2)
    r.step()
    # Free the slot behind the resolver's back
    r.pool.release(r.resident[0])
    assert r.step() is ResolverState.FAILED
    assert isinstance(r.error, DoubleRelease)
    assert r.error.index == 1
    assert r.error.value_id == 0
    assert r.error.register == 0
    assert "(value %0)" in str(r.error)


def test_invariants_catch_register_missing_from_free_list():
    r = make([ldi(0), ret(0)], capacity=2)
    assert r.check_invariants() == []
    r.pool.acquire()
    assert r.check_invariants() == ["free register 0 appears 0 times on the free list"]


def test_spill_and_reload_round_trip():
    A, B = 0, 1
    r = make([ldi(A), ldi(B), op(Operation.ADD, B + 1, A, B), ret(B + 1)], capacity=2, nvalues=3)
    r.step()
    before = r.values.get(A)
    uses, size = list(before.uses), before.size
    register = r.resident[A]

    r.spill_value(A)
    assert r.values.state(A) is ValueState.SPILLED
    assert A not in r.resident
    assert r.check_invariants() == []

    reloaded = r.reload_value(A)
    value = r.values.get(A)
    assert value.state is ValueState.ACTIVE
    assert r.resident[A] == reloaded == register
    assert A not in r.spills
    assert value.size == size
    assert value.uses == uses
    assert r.check_invariants() == []


def test_sizes_pass_through_to_bound_operands():
    block = LogicalBlock(name="f")
    a = block.new_value(SizeClass.BITS8)
    b = block.new_value(SizeClass.BITS64)
    block.append(Operation.LDI, outputs=[a], immediate=1)
    block.append(Operation.MOV, outputs=[b], inputs=[a])
    block.append(Operation.RET, inputs=[b])
    result = resolve_block(block, capacity=2)
    mov = result.instructions[1]
    assert mov.inputs[0].size is SizeClass.BITS8
    assert mov.outputs[0].size is SizeClass.BITS64
    assert result.name == "f"


def test_immediates_are_carried_through():
    block = LogicalBlock(name="g")
    a = block.new_value(SizeClass.BITS32)
    block.append(Operation.LOAD, outputs=[a], immediate=Label("counter"))
    block.append(Operation.RET, inputs=[a])
    result = resolve_block(block)
    assert result.instructions[0].immediate == Label("counter")
    assert "resolved g:" in result.dump()
