"""Gradients of the built-in operations, checked against PyTorch autograd."""

import numpy as np
import pytest
import torch
import tapegrad as tg


def _tape_grads(fn, *arrays):
    inputs = [tg.tensor(np.array(a, dtype=np.float64)) for a in arrays]
    with tg.Tape() as tape:
        out = tg.sum(fn(tg, *inputs))
    return [g.numpy() for g in tape.gradient_wrt(out, inputs)]


def _torch_grads(fn, *arrays):
    inputs = [torch.tensor(np.array(a, dtype=np.float64), requires_grad=True) for a in arrays]
    fn(torch, *inputs).sum().backward()
    return [t.grad.numpy() for t in inputs]


UNARY_CASES = [
    ('neg', lambda m, x: m.neg(x)),
    ('exp', lambda m, x: m.exp(x)),
    ('log', lambda m, x: m.log(x)),
    ('sqrt', lambda m, x: m.sqrt(x)),
    ('relu', lambda m, x: m.relu(x)),
    ('pow', lambda m, x: m.pow(x, 3.0)),
    ('mean', lambda m, x: m.mean(x)),
]

BINARY_CASES = [
    ('add', lambda m, a, b: m.add(a, b)),
    ('sub', lambda m, a, b: m.sub(a, b)),
    ('mul', lambda m, a, b: m.mul(a, b)),
    ('div', lambda m, a, b: m.div(a, b)),
]


class TestAgainstTorch:

    @pytest.mark.parametrize('name,fn', UNARY_CASES)
    def test_unary(self, name, fn, random_seed):
        x = np.random.rand(3, 4) + 0.5
        x[0, 0] = -0.7 if name == 'relu' else x[0, 0]
        (ours,) = _tape_grads(fn, x)
        (theirs,) = _torch_grads(fn, x)
        np.testing.assert_allclose(ours, theirs, rtol=1e-6, atol=1e-9)

    @pytest.mark.parametrize('name,fn', BINARY_CASES)
    def test_binary(self, name, fn, random_seed):
        a = np.random.rand(2, 3) + 0.5
        b = np.random.rand(2, 3) + 0.5
        for ours, theirs in zip(_tape_grads(fn, a, b), _torch_grads(fn, a, b)):
            np.testing.assert_allclose(ours, theirs, rtol=1e-6, atol=1e-9)

    @pytest.mark.parametrize('name,fn', BINARY_CASES)
    def test_binary_broadcast(self, name, fn, random_seed):
        a = np.random.rand(4, 3) + 0.5
        b = np.random.rand(3) + 0.5
        ours = _tape_grads(fn, a, b)
        theirs = _torch_grads(fn, a, b)
        assert ours[1].shape == (3,)
        for o, t in zip(ours, theirs):
            np.testing.assert_allclose(o, t, rtol=1e-6, atol=1e-9)

    def test_matmul(self, random_seed):
        a = np.random.randn(3, 4)
        b = np.random.randn(4, 2)
        for o, t in zip(_tape_grads(lambda m, x, y: m.matmul(x, y), a, b),
                        _torch_grads(lambda m, x, y: m.matmul(x, y), a, b)):
            np.testing.assert_allclose(o, t, rtol=1e-6, atol=1e-9)

    def test_transpose(self, random_seed):
        a = np.random.randn(2, 3)
        w = np.random.randn(3, 2)
        fn_ours = lambda m, x, y: m.mul(m.transpose(x), y)
        fn_torch = lambda m, x, y: m.mul(x.transpose(-2, -1), y)
        for o, t in zip(_tape_grads(fn_ours, a, w), _torch_grads(fn_torch, a, w)):
            np.testing.assert_allclose(o, t, rtol=1e-6, atol=1e-9)

    @pytest.mark.parametrize('axis,keepdims', [(0, False), (1, False), (1, True), (None, True)])
    def test_sum_axis(self, axis, keepdims, random_seed):
        x = np.random.randn(3, 4)
        w = np.random.randn(3, 4).sum(axis=axis, keepdims=keepdims)

        def ours(m, t):
            return m.mul(m.sum(t, axis=axis, keepdims=keepdims), tg.tensor(w))

        def theirs(m, t):
            dims = tuple(range(t.ndim)) if axis is None else axis
            return t.sum(dim=dims, keepdim=keepdims) * torch.tensor(w)

        (o,) = _tape_grads(ours, x)
        (t,) = _torch_grads(theirs, x)
        np.testing.assert_allclose(o, t, rtol=1e-6, atol=1e-9)

    def test_mean_axis(self, random_seed):
        x = np.random.randn(3, 4)
        w = np.random.randn(4)
        (o,) = _tape_grads(lambda m, t: m.mul(m.mean(t, axis=0), tg.tensor(w)), x)
        (t,) = _torch_grads(lambda m, t: t.mean(dim=0) * torch.tensor(w), x)
        np.testing.assert_allclose(o, t, rtol=1e-6, atol=1e-9)

    def test_small_mlp(self, random_seed):
        x = np.random.randn(5, 3)
        w1 = np.random.randn(3, 4)
        w2 = np.random.randn(4, 1)

        def net(m, x, w1, w2):
            h = m.relu(m.matmul(x, w1))
            return m.mul(m.matmul(h, w2), m.matmul(h, w2))

        for o, t in zip(_tape_grads(net, x, w1, w2), _torch_grads(net, x, w1, w2)):
            np.testing.assert_allclose(o, t, rtol=1e-6, atol=1e-9)


class TestOps:

    def test_python_scalars_become_leaves(self, tape):
        x = tg.tensor([1.0, 2.0])
        y = tg.mul(x, 2.0)
        z = tg.add(3, y)
        assert y.dtype == tg.float32
        np.testing.assert_allclose(z.numpy(), [5.0, 7.0])
        (dx,) = tape.gradient_wrt(z, [x])
        np.testing.assert_allclose(dx.numpy(), [2.0, 2.0])

    def test_matmul_needs_matrices(self):
        with pytest.raises(ValueError):
            tg.matmul(tg.ones(3), tg.ones(3, 2))

    def test_tape_backend_used(self):
        calls = []

        class CountingBackend(tg.NumpyBackend):
            def add(self, a, b):
                calls.append('add')
                return super().add(a, b)

        x = tg.tensor([1.0])
        with tg.Tape(backend=CountingBackend()) as tape:
            y = tg.add(x, x)
        assert calls == ['add']
        tape.gradient_wrt(y, [x])
        # one forward add, one off-tape accumulation
        assert calls == ['add', 'add']


class TestGradCheck:

    def test_passes(self, random_seed):
        x = tg.tensor(np.random.rand(2, 3) + 0.5)
        w = tg.tensor(np.random.rand(3, 2))
        f = lambda x, w: tg.sum(tg.log(tg.add(tg.matmul(x, w), 1.0)))
        assert tg.check_gradients(f, [x, w])

    def test_skips_disconnected(self):
        x = tg.tensor(np.array([1.0, 2.0]))
        unused = tg.tensor(np.array([3.0]))
        assert tg.check_gradients(lambda x, u: tg.sum(tg.exp(x)), [x, unused])

    def test_detects_wrong_gradient(self):
        x = tg.tensor(np.array([1.0, 2.0]))

        def bad_square(x):
            out = tg.get_backend().mul(x, x)
            return tg.sum(tg.record('bad_square', [('x', x)], out, lambda dy, y: {'x': dy}))

        with pytest.raises(tg.GradientCheckError):
            tg.check_gradients(bad_square, [x])

    def test_rejects_non_scalar(self):
        x = tg.tensor(np.array([1.0, 2.0]))
        with pytest.raises(ValueError):
            tg.check_gradients(lambda x: tg.exp(x), [x])
