"""Tests for tape recording and the tape scope."""

import numpy as np
import pytest
import tapegrad as tg
from tapegrad.autograd import RecordedOperationNode


def _node(name, inputs, output, gradient=None):
    return RecordedOperationNode(name, tuple(inputs), output, gradient)


class TestTapeAppend:

    def test_append_and_lookup(self):
        tape = tg.Tape()
        x = tg.ones(2)
        y = tg.ones(2)
        node = _node('copy', [('x', x)], y)
        tape.append(node)
        assert len(tape) == 1
        assert tape.lookup_producer(y) is node
        assert tape.lookup_producer(y.id) is node
        assert tape.lookup_producer(x) is None
        assert y in tape
        assert x not in tape

    def test_nodes_keep_execution_order(self):
        tape = tg.Tape()
        x = tg.ones(1)
        outs = [tg.ones(1) for _ in range(4)]
        for i, out in enumerate(outs):
            tape.append(_node(f'op{i}', [('x', x)], out))
        assert [n.name for n in tape.nodes] == ['op0', 'op1', 'op2', 'op3']
        assert [n.name for n in tape] == ['op0', 'op1', 'op2', 'op3']

    def test_duplicate_output_rejected(self):
        tape = tg.Tape()
        x, y = tg.ones(1), tg.ones(1)
        tape.append(_node('first', [('x', x)], y))
        with pytest.raises(tg.DuplicateOutputError) as info:
            tape.add_evaluated_node(_node('second', [('x', x)], y))
        assert info.value.op_name == 'second'
        assert len(tape) == 1

    def test_nodes_view_is_read_only(self):
        tape = tg.Tape()
        assert isinstance(tape.nodes, tuple)


class TestRecordedOperationNode:

    def test_roles(self):
        a, b, y = tg.ones(1), tg.ones(1), tg.ones(1)
        node = _node('mul', [('a', a), ('b', b)], y)
        assert node.input_ids == (('a', a.id), ('b', b.id))
        assert node.input_id('b') == b.id
        assert node.output_id == y.id
        assert not node.differentiable
        with pytest.raises(KeyError):
            node.input_id('c')

    def test_duplicate_roles_rejected(self):
        a, y = tg.ones(1), tg.ones(1)
        with pytest.raises(ValueError):
            _node('bad', [('a', a), ('a', a)], y)

    def test_same_tensor_in_two_roles(self):
        a, y = tg.ones(1), tg.ones(1)
        node = _node('square', [('a', a), ('b', a)], y)
        assert node.input_id('a') == node.input_id('b') == a.id

    def test_frozen(self):
        node = _node('noop', [], tg.ones(1))
        with pytest.raises(Exception):
            node.name = 'other'


class TestTapeScope:

    def test_ops_record_inside_scope_only(self):
        a = tg.tensor([1.0, 2.0])
        tg.exp(a)
        with tg.Tape() as tape:
            y = tg.exp(a)
            z = tg.neg(y)
        tg.log(a)
        assert [n.name for n in tape.nodes] == ['exp', 'neg']
        assert tape.lookup_producer(z).inputs[0][1] is y

    def test_current(self):
        assert tg.Tape.current() is None
        with tg.Tape() as outer:
            assert tg.Tape.current() is outer
            with tg.Tape() as inner:
                assert tg.Tape.current() is inner
            assert tg.Tape.current() is outer
        assert tg.Tape.current() is None

    def test_nested_scope_records_innermost(self):
        a = tg.tensor([1.0])
        with tg.Tape() as outer:
            tg.exp(a)
            with tg.Tape() as inner:
                tg.neg(a)
        assert [n.name for n in outer] == ['exp']
        assert [n.name for n in inner] == ['neg']

    def test_record_generic(self, tape):
        x = tg.tensor([1.0])
        out = tg.tensor([2.0])
        returned = tg.record('custom', [('x', x)], out)
        assert returned is out
        assert tape.lookup_producer(out).name == 'custom'

    def test_nondifferentiable_ops_recorded_without_gradient(self, tape):
        x = tg.tensor(np.array([[-1.0, 2.0], [3.0, -4.0]]))
        s = tg.step(x)
        m = tg.argmax(x)
        assert not tape.lookup_producer(s).differentiable
        assert not tape.lookup_producer(m).differentiable
        np.testing.assert_array_equal(s.numpy(), [[0.0, 1.0], [1.0, 0.0]])
        assert m.item() == 2
