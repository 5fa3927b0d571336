"""
Scalar expression nodes and the operation builders that create them.

A Value is immutable: its data, operation and children are fixed when it is
built, and gradients are never written into it. Gradients live in the mapping
returned by ``scalargrad.graph.differentiate`` and are folded into a fresh,
annotated copy of the graph by ``scalargrad.graph.materialize``.
"""

import itertools
import math


LEAF = "leaf"
ADD = "add"
MUL = "multiply"
POW = "power"
TANH = "tanh"
RELU = "relu"
SUM = "sum"

# None means any number of children.
ARITY = {
    LEAF: 0,
    ADD: 2,
    MUL: 2,
    POW: 2,
    TANH: 1,
    RELU: 1,
    SUM: None,
}

_ids = itertools.count()


class GraphError(Exception):
    """Base class for expression graph errors."""


class ArityError(GraphError, ValueError):
    """An operation was given the wrong number of children."""


class IdentityCollisionError(GraphError):
    """Two distinct nodes in one graph share an identity."""


def _check_arity(op, children):
    if op not in ARITY:
        raise ArityError(f"unknown operation {op!r}")
    expected = ARITY[op]
    if expected is not None and len(children) != expected:
        raise ArityError(
            f"{op} takes {expected} children, got {len(children)}"
        )


def _check_identities(children):
    seen = {}
    for child in children:
        if not isinstance(child, Value):
            raise TypeError(f"children must be Value nodes, got {type(child).__name__}")
        other = seen.setdefault(child.id, child)
        if other is not child:
            raise IdentityCollisionError(
                f"distinct nodes share identity {child.id}"
            )


class Value:
    """Scalar node in an expression graph."""

    __slots__ = ('data', 'grad', 'op', 'children', 'label', 'id')

    def __init__(self, data, _children=(), _op=LEAF, label=''):
        if _op != LEAF:
            raise ArityError(
                f"{_op} nodes are computed from their children, use build()"
            )
        _check_arity(LEAF, tuple(_children))
        self._fill(float(data), (), LEAF, label, None, next(_ids))

    def _fill(self, data, children, op, label, grad, node_id):
        init = object.__setattr__
        init(self, 'data', data)
        init(self, 'grad', grad)
        init(self, 'op', op)
        init(self, 'children', children)
        init(self, 'label', label)
        init(self, 'id', node_id)

    @classmethod
    def _from_children(cls, data, children, op, label):
        node = cls.__new__(cls)
        node._fill(float(data), children, op, label, None, next(_ids))
        return node

    def __setattr__(self, name, value):
        raise AttributeError(f"Value is immutable, cannot set {name!r}")

    def __delattr__(self, name):
        raise AttributeError(f"Value is immutable, cannot delete {name!r}")

    def __repr__(self):
        if self.grad is None:
            return f"Value(data={self.data:.4f})"
        return f"Value(data={self.data:.4f}, grad={self.grad:.4f})"

    def _annotated(self, children, grad):
        # Copy that keeps this node's identity so it can still be looked up
        # in the gradient mapping it was built from.
        copy = Value.__new__(Value)
        copy._fill(self.data, tuple(children), self.op, self.label, float(grad), self.id)
        return copy

    def is_leaf(self):
        return self.op == LEAF

    def __add__(self, other):
        other = _coerce(other)
        if other is NotImplemented:
            return other
        return add(self, other)

    def __radd__(self, other):
        return self + other

    def __mul__(self, other):
        other = _coerce(other)
        if other is NotImplemented:
            return other
        return multiply(self, other)

    def __rmul__(self, other):
        return self * other

    def __pow__(self, other):
        other = _coerce(other)
        if other is NotImplemented:
            return other
        return power(self, other)

    def __neg__(self):
        return self * -1

    def __sub__(self, other):
        return self + (-other)

    def __rsub__(self, other):
        return other + (-self)

    def __truediv__(self, other):
        return self * other ** -1

    def __rtruediv__(self, other):
        return other * self ** -1

    def tanh(self):
        return tanh(self)

    def relu(self):
        return relu(self)

    def backward(self):
        """Return a gradient-annotated copy of the graph rooted here."""
        from .graph import backward
        return backward(self)


def _coerce(other):
    if isinstance(other, Value):
        return other
    if isinstance(other, (int, float)):
        return Value(other)
    return NotImplemented


def _tanh(x):
    # (e^2x - 1) / (e^2x + 1), written in terms of e^-2|x| so it cannot overflow
    e = math.exp(-2.0 * abs(x))
    t = (1.0 - e) / (1.0 + e)
    return t if x >= 0 else -t


def _power(base, exponent):
    # the slope e * b^(e-1) is unbounded at 0 for these exponents
    if base == 0 and exponent < 1 and exponent != 0:
        raise ValueError(
            f"{base} ** {exponent} has no finite derivative"
        )
    out = base ** exponent
    if isinstance(out, complex):
        raise ValueError(
            f"{base} ** {exponent} has no real value"
        )
    return out


_FORWARD = {
    ADD: lambda c: c[0].data + c[1].data,
    SUM: lambda c: sum((n.data for n in c), 0.0),
    MUL: lambda c: c[0].data * c[1].data,
    POW: lambda c: _power(c[0].data, c[1].data),
    TANH: lambda c: _tanh(c[0].data),
    RELU: lambda c: max(c[0].data, 0.0),
}


def build(op, children, label=''):
    """Build a node for ``op`` over ``children``, computing its value eagerly."""
    children = tuple(children)
    if op == LEAF:
        raise ArityError("leaf nodes are built from a value, use leaf()")
    _check_arity(op, children)
    _check_identities(children)
    return Value._from_children(_FORWARD[op](children), children, op, label)


def leaf(data, label=''):
    return Value(data, label=label)


def add(a, b, label=''):
    return build(ADD, (a, b), label)


def sum_of(nodes, label=''):
    """Sum any number of nodes as a single node; the empty sum is 0.0."""
    return build(SUM, nodes, label)


def multiply(a, b, label=''):
    return build(MUL, (a, b), label)


def power(base, exponent, label=''):
    """
    Raise ``base`` to ``exponent``.

    The exponent is kept as a child so the graph stays uniform, but it is
    treated as a constant: no gradient ever flows into it.
    """
    if not isinstance(exponent, Value):
        exponent = Value(exponent)
    return build(POW, (base, exponent), label)


def tanh(x, label=''):
    return build(TANH, (x,), label)


def relu(x, label=''):
    return build(RELU, (x,), label)
