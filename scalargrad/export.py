"""Read-only projections of an expression graph for the visualizer."""

from .graph import topological_order


def trace(root):
    """Return (nodes, edges) reachable from root; edges run child -> parent."""
    nodes = topological_order(root)
    edges = []
    seen = set()
    for parent in nodes:
        for child in parent.children:
            if (child.id, parent.id) not in seen:
                seen.add((child.id, parent.id))
                edges.append((child, parent))
    return nodes, edges


def _describe(n):
    grad = "-" if n.grad is None else f"{n.grad:.4f}"
    text = f"data: {n.data:.4f} | grad: {grad}"
    if n.label:
        text = f"{n.label} | {text}"
    return text


def get_graph_json(root):
    nodes, edges = trace(root)
    data = {
        "nodes": [],
        "edges": []
    }

    for n in nodes:
        data["nodes"].append({
            "id": str(n.id),
            "label": _describe(n),
            "op": n.op,
            "data": n.data,
            "grad": n.grad,
        })

    for n1, n2 in edges:
        data["edges"].append({"source": str(n1.id), "target": str(n2.id)})

    return data
