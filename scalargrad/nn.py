"""
Tiny feed-forward networks built from scalar Values.

Graph nodes are immutable, so a network holds its parameters as leaf Values
and swaps in fresh leaves when it is updated. The containers below are the
only mutable state in a training run.
"""

import random

from .value import Value, sum_of


NONLINEARITIES = ("tanh", "relu", "linear")


class Module:

    def parameters(self):
        return []

    def _assign(self, params):
        raise NotImplementedError(f"{type(self).__name__} does not hold parameters")

    def load_parameters(self, values):
        """Replace every parameter with a leaf holding the matching float."""
        current = self.parameters()
        values = [float(v) for v in values]
        if len(values) != len(current):
            raise ValueError(
                f"expected {len(current)} parameters, got {len(values)}"
            )
        self._assign(iter(Value(v, label=p.label) for p, v in zip(current, values)))

    def update(self, grads, learning_rate):
        """Take one gradient-descent step using a mapping from differentiate()."""
        self._assign(iter(
            Value(p.data - learning_rate * grads.get(p.id, 0.0), label=p.label)
            for p in self.parameters()
        ))


class Neuron(Module):

    def __init__(self, nin, nonlin="tanh", rng=None, name="n"):
        if nonlin not in NONLINEARITIES:
            raise ValueError(f"unknown nonlinearity {nonlin!r}")
        rng = rng or random.Random()
        self.nin = nin
        self.nonlin = nonlin
        self.w = [Value(rng.uniform(-1, 1), label=f"{name}.w{i}") for i in range(nin)]
        self.b = Value(rng.uniform(-1, 1), label=f"{name}.b")

    def __call__(self, x):
        if len(x) != self.nin:
            raise ValueError(f"expected {self.nin} inputs, got {len(x)}")
        act = sum_of([wi * xi for wi, xi in zip(self.w, x)] + [self.b])
        if self.nonlin == "tanh":
            return act.tanh()
        if self.nonlin == "relu":
            return act.relu()
        return act

    def parameters(self):
        return self.w + [self.b]

    def _assign(self, params):
        self.w = [next(params) for _ in self.w]
        self.b = next(params)

    def __repr__(self):
        return f"{self.nonlin.capitalize()}Neuron({self.nin})"


class Layer(Module):

    def __init__(self, nin, nout, name="L", **kwargs):
        self.neurons = [Neuron(nin, name=f"{name}.n{i}", **kwargs) for i in range(nout)]

    def __call__(self, x):
        out = [n(x) for n in self.neurons]
        return out[0] if len(out) == 1 else out

    def parameters(self):
        return [p for n in self.neurons for p in n.parameters()]

    def _assign(self, params):
        for n in self.neurons:
            n._assign(params)

    def __repr__(self):
        return f"Layer of [{', '.join(str(n) for n in self.neurons)}]"


class MLP(Module):

    def __init__(self, nin, nouts, nonlin="tanh", seed=None):
        rng = random.Random(seed)
        sizes = [nin] + list(nouts)
        self.nin = nin
        self.nouts = list(nouts)
        self.layers = [
            Layer(sizes[i], sizes[i + 1], name=f"L{i}", nonlin=nonlin, rng=rng)
            for i in range(len(nouts))
        ]

    def __call__(self, x):
        for layer in self.layers:
            x = layer(x)
            if isinstance(x, Value):
                x = [x]
        return x[0] if len(x) == 1 else x

    def parameters(self):
        return [p for layer in self.layers for p in layer.parameters()]

    def _assign(self, params):
        for layer in self.layers:
            layer._assign(params)

    def __repr__(self):
        return f"MLP of [{', '.join(str(layer) for layer in self.layers)}]"


def mse_loss(predictions, targets):
    """Sum of squared errors between prediction nodes and target numbers."""
    predictions = list(predictions)
    targets = list(targets)
    if len(predictions) != len(targets):
        raise ValueError(
            f"got {len(predictions)} predictions for {len(targets)} targets"
        )
    return sum_of([(yp - yt) ** 2 for yp, yt in zip(predictions, targets)])
