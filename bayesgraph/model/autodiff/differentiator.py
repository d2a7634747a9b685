# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Forward-mode differentiation of a vertex graph.

The :py:class:`Differentiator` computes the dual number of a vertex by walking its
ancestors in dependency-first order with an explicit work stack. A vertex is
finalized once every parent that participates in differentiation has been
finalized; parents that do not participate (constants, discrete and boolean
vertices) are treated as constants and contribute no partial derivatives.

Probabilistic vertices are the leaves of a traversal. A latent floating-point
vertex has the identity as its derivative with respect to itself, while an
observed vertex is a constant. Deterministic vertices apply their own
derivative rule to the dual numbers of their parents.

Results are memoized per differentiator instance, so one instance can be reused
to differentiate several vertices that share ancestors. No memo outlives the
instance, so there is never stale state to invalidate after a value changes.
"""

from __future__ import annotations

import logging

from typing import Iterable, TYPE_CHECKING

from bayesgraph.model.autodiff.dual_number import DualNumber

if TYPE_CHECKING:
    from bayesgraph.model.components.abstract_model_component import Vertex

logger = logging.getLogger(__name__)


class Differentiator:
    """Computes and memoizes dual numbers for the vertices of a graph.

    Example:
        >>> differentiator = Differentiator()
        >>> dual = differentiator.calculate_dual_number(f)
        >>> dual.partials.get(a.id)  # d f / d a
    """

    def __init__(self):
        self._memo: dict["Vertex", DualNumber] = {}

    def _parent_dual(self, parent: "Vertex") -> DualNumber:
        """Dual number of a finalized parent, or a constant for a non-differentiable one."""
        if parent in self._memo:
            return self._memo[parent]
        return DualNumber.create_constant(parent.get_value())

    def calculate_dual_number(self, vertex: "Vertex") -> DualNumber:
        """Compute the dual number of a vertex.

        :param vertex: Vertex to differentiate
        :type vertex: Vertex

        :returns: The value of the vertex and its partial derivatives with respect
            to every latent ancestor reachable through differentiable vertices
        :rtype: DualNumber

        :raises UnsupportedDifferentiationError: If an operator without a derivative
            is reached
        """
        if vertex in self._memo:
            return self._memo[vertex]

        # A vertex that does not participate has no partials at all
        if not vertex.differentiable:
            return DualNumber.create_constant(vertex.get_value())

        stack = [vertex]
        while stack:
            current = stack[-1]
            if current in self._memo:
                stack.pop()
                continue

            # Probabilistic vertices are leaves. Deterministic ones wait for all
            # participating parents.
            pending = []
            if not current.is_probabilistic:
                pending = [
                    parent
                    for parent in current.parents
                    if parent.differentiable and parent not in self._memo
                ]
            if pending:
                stack.extend(pending)
                continue

            stack.pop()
            self._memo[current] = current.calculate_dual(
                {}
                if current.is_probabilistic
                else {
                    name: self._parent_dual(parent)
                    for name, parent in current.named_parents.items()
                }
            )

        logger.debug(
            "Computed dual number of %s (%d memoized vertices)",
            vertex.describe(),
            len(self._memo),
        )
        return self._memo[vertex]

    def calculate_dual_numbers(
        self, vertices: Iterable["Vertex"]
    ) -> dict["Vertex", DualNumber]:
        """Compute dual numbers of several vertices sharing one memo.

        :param vertices: Vertices to differentiate
        :type vertices: Iterable[Vertex]

        :returns: Dual number of every requested vertex
        :rtype: dict[Vertex, DualNumber]
        """
        return {vertex: self.calculate_dual_number(vertex) for vertex in vertices}
