#!/usr/bin/env python
"""
tapegrad Demo: Fitting a Line with the Tape
===========================================

Records a squared-error loss on a Tape, asks the tape for the gradients of
the loss with respect to the weight and bias, and takes plain gradient
descent steps. A fresh tape is opened for every step.
"""

import sys
import os

# Add parent directory to path so we can import tapegrad
parent_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, parent_dir)

import numpy as np
import tapegrad as tg


def make_data(n=64, slope=3.0, intercept=-1.0, noise=0.1, seed=0):
    rng = np.random.default_rng(seed)
    x = rng.uniform(-1, 1, size=(n, 1))
    y = slope * x + intercept + noise * rng.standard_normal((n, 1))
    return tg.tensor(x), tg.tensor(y)


def loss_fn(x, y, w, b):
    pred = tg.add(tg.matmul(x, w), b)
    return tg.mean(tg.pow(tg.sub(pred, y), 2.0))


def main(steps=200, lr=0.5):
    x, y = make_data()
    w = tg.tensor(np.zeros((1, 1)))
    b = tg.tensor(np.zeros(1))

    for i in range(steps):
        with tg.Tape() as tape:
            loss = loss_fn(x, y, w, b)
        dw, db = tape.gradient_wrt(loss, [w, b])

        # parameters are tape-external leaves, so update their buffers in place
        w.storage.numpy()[:] -= lr * dw.numpy().reshape(-1)
        b.storage.numpy()[:] -= lr * db.numpy().reshape(-1)
        dw.dispose()
        db.dispose()

        if i % 50 == 0 or i == steps - 1:
            print(f"step {i:4d}  loss {loss.item():.5f}")

    print(f"\nfitted slope {w.item():.3f}, intercept {b.item():.3f} (true 3.000, -1.000)")


if __name__ == '__main__':
    main()
