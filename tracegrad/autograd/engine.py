"""
Tracegrad Autograd - Engine
===========================

Reverse-mode differentiation over a traced expression graph.

Gradients are not numbers but new nodes appended to the same graph, so
the gradient of a gradient is obtained by running the engine again.
"""

from __future__ import annotations
from typing import Dict, List, Sequence, Set
import logging

from ..core.dtypes import to_floating
from ..core.graph import Expr
from ..core.registry import get_op
from ..core.tracing import check_scalar, graph_scope
from ..errors import ShapeMismatch, TracingError, UnknownOperation, describe_node
from ..ops import add, as_type, full, zeros

logger = logging.getLogger(__name__)


def gradients(output: Expr, variables: Sequence[Expr]) -> List[Expr]:
    """
    Gradients of the scalar ``output`` with respect to each of ``variables``.

    Parameters
    ----------
    output : Expr
        Scalar (zero-dimensional) root of the differentiation.
    variables : Sequence[Expr]
        Nodes of the same graph to differentiate against.

    Returns
    -------
    One Expr per variable, shaped like it and of type
    ``to_floating(variable.dtype)``. Variables the output does not depend on
    get zeros.

    Raises
    ------
    ShapeMismatch
        If ``output`` is not scalar, or a differentiation rule returns a
        contribution of the wrong shape.
    UnknownOperation
        If a node on a path to a variable has no differentiation rule.
    """
    check_scalar(output, "Differentiation root")
    graph = output.graph
    for v in variables:
        if not isinstance(v, Expr) or v.graph is not graph:
            raise TracingError(f"Cannot differentiate with respect to {v!r}: not a node of the output's graph")

    size_before = len(graph)
    order = graph.topological_order([output.id])

    # Only nodes with a path from some variable can carry gradient
    wanted = {v.id for v in variables}
    relevant: Set[int] = set()
    for node_id in order:
        if node_id in wanted or any(arg in relevant for arg in graph[node_id].args):
            relevant.add(node_id)

    pending: Dict[int, int] = {node_id: 0 for node_id in relevant}
    for node_id, users in graph.consumers([i for i in order if i in relevant]).items():
        pending[node_id] = len(users)

    contributions: Dict[int, List[Expr]] = {node_id: [] for node_id in relevant}
    totals: Dict[int, Expr] = {}

    with graph_scope(graph):
        if output.id in relevant:
            contributions[output.id].append(full(1, (), to_floating(output.dtype), graph))
            ready = [output.id]
        else:
            ready = []

        visited = 0
        while ready:
            node_id = ready.pop()
            node = graph[node_id]
            visited += 1
            targets = [arg for arg in node.args if arg in relevant]

            parts = contributions.pop(node_id)
            if parts:
                g = totals[node_id] = _total(parts)
                if targets:
                    _propagate(node, g, relevant, contributions)

            for arg in targets:
                pending[arg] -= 1
                if pending[arg] == 0:
                    ready.append(arg)

        results = []
        for v in variables:
            target = to_floating(v.dtype)
            total = totals.get(v.id)
            if total is None:
                total = zeros(v.shape, target, graph)
            results.append(as_type(total, target))

    logger.debug(
        "gradients of #%d: %d nodes visited, %d gradient nodes created",
        output.id, visited, len(graph) - size_before,
    )
    return results


def _total(parts: List[Expr]) -> Expr:
    g = parts[0]
    for part in parts[1:]:
        g = add(g, part)
    return g


def _propagate(node, g: Expr, relevant: Set[int], contributions: Dict[int, List[Expr]]) -> None:
    """Run ``node``'s differentiation rule and record one contribution per relevant operand."""
    opdef = get_op(node.op)
    if not opdef.differentiable:
        raise UnknownOperation(
            f"No differentiation rule for {describe_node(node)}", op=node.op, node=node
        )
    operands = tuple(Expr(g.graph, arg) for arg in node.args)
    parts = tuple(opdef.grad_rule(node, operands, g))
    if len(parts) != len(operands):
        raise ShapeMismatch(
            f"Differentiation rule of {node.op} returned {len(parts)} contributions "
            f"for {len(operands)} operands ({describe_node(node)})",
            node=node,
        )

    for operand, part in zip(operands, parts):
        if part is None or operand.id not in relevant:
            continue
        if part.shape != operand.shape:
            raise ShapeMismatch(
                f"Differentiation rule of {node.op} returned shape {part.shape} for "
                f"operand #{operand.id} of shape {operand.shape} ({describe_node(node)})",
                shape=part.shape,
                node=node,
            )
        contributions[operand.id].append(part)
