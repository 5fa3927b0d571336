"""
Reverse-mode differentiation over an expression graph.

    order = topological_order(root)      # root first, leaves last
    grads = differentiate(root)          # {node.id: d(root)/d(node)}
    annotated = materialize(root, grads) # copy of the graph with .grad set

None of these touch the input graph; differentiating the same root twice, or
from several threads, gives independent results.
"""

import logging

from .value import (
    ADD,
    LEAF,
    MUL,
    POW,
    RELU,
    SUM,
    TANH,
    IdentityCollisionError,
)

logger = logging.getLogger(__name__)


def topological_order(root):
    """
    Return every node reachable from ``root`` exactly once, root first.

    A node is emitted only after all of its children have been emitted, and
    the finish order is then reversed, so every parent of a node comes before
    it. Walking the result front to back therefore sees a node only once all
    the gradient it will ever receive has been accumulated.

    Raises IdentityCollisionError if two distinct node objects in the graph
    share an identity.
    """
    topo = []
    visited = {}
    stack = [(root, False)]

    while stack:
        node, expanded = stack.pop()
        if expanded:
            topo.append(node)
            continue
        seen = visited.get(node.id)
        if seen is not None:
            if seen is not node:
                raise IdentityCollisionError(
                    f"distinct nodes share identity {node.id}"
                )
            continue
        visited[node.id] = node
        stack.append((node, True))
        for child in reversed(node.children):
            stack.append((child, False))

    topo.reverse()
    return topo


def _leaf_rule(node, g):
    return ()


def _add_rule(node, g):
    left, right = node.children
    return ((left, g), (right, g))


def _sum_rule(node, g):
    return tuple((child, g) for child in node.children)


def _mul_rule(node, g):
    left, right = node.children
    return ((left, right.data * g), (right, left.data * g))


def _pow_rule(node, g):
    # exponent is a constant; it never receives gradient
    base, exponent = node.children
    e = exponent.data
    if e == 0:
        return ((base, 0.0),)
    return ((base, e * base.data ** (e - 1) * g),)


def _tanh_rule(node, g):
    (x,) = node.children
    return ((x, (1.0 - node.data ** 2) * g),)


def _relu_rule(node, g):
    # not differentiable at 0; take the derivative there to be 0
    (x,) = node.children
    return ((x, g if node.data > 0 else 0.0),)


_RULES = {
    LEAF: _leaf_rule,
    ADD: _add_rule,
    SUM: _sum_rule,
    MUL: _mul_rule,
    POW: _pow_rule,
    TANH: _tanh_rule,
    RELU: _relu_rule,
}


def differentiate(root):
    """
    Compute d(root)/d(node) for every node reachable from ``root``.

    Returns a dict keyed by node identity. Contributions from every parent
    of a shared node are summed. A node whose only parents are power nodes
    (as their exponent) gets no entry at all.
    """
    order = topological_order(root)
    grads = {root.id: 1.0}

    for node in order:
        g = grads.get(node.id, 0.0)
        for child, contribution in _RULES[node.op](node, g):
            grads[child.id] = grads.get(child.id, 0.0) + contribution

    logger.debug("differentiated %d nodes from root %d", len(order), root.id)
    return grads


def materialize(root, grads):
    """
    Return a copy of the graph under ``root`` with every node's grad filled in.

    Gradients are looked up by identity in ``grads``; nodes missing from it
    had no influence on the root and get 0.0. Shared nodes stay shared in
    the copy.
    """
    copies = {}
    for node in reversed(topological_order(root)):
        children = [copies[child.id] for child in node.children]
        copies[node.id] = node._annotated(children, grads.get(node.id, 0.0))
    return copies[root.id]


def backward(root):
    return materialize(root, differentiate(root))
