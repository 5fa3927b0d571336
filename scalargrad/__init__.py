"""Reverse-mode automatic differentiation over scalar expression graphs."""

from .value import (
    ArityError,
    GraphError,
    IdentityCollisionError,
    Value,
    add,
    build,
    leaf,
    multiply,
    power,
    relu,
    sum_of,
    tanh,
)
from .graph import backward, differentiate, materialize, topological_order
from .export import get_graph_json, trace

__version__ = "0.1.0"

__all__ = [
    "ArityError",
    "GraphError",
    "IdentityCollisionError",
    "Value",
    "add",
    "backward",
    "build",
    "differentiate",
    "get_graph_json",
    "leaf",
    "materialize",
    "multiply",
    "power",
    "relu",
    "sum_of",
    "tanh",
    "topological_order",
    "trace",
]
