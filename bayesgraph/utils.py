# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Utility functions for the bayesgraph package.

This module provides functions that support the core functionality of bayesgraph,
including:

    - Lazy importing mechanisms used to break circular imports
    - Graph traversal helpers (ancestor collection and topological sorting)
    - Shape helpers used by vertices and distribution kernels

Users will not typically need to interact with this module directly--it is designed
to be used internally by bayesgraph.
"""

from __future__ import annotations

import heapq
import importlib.util
import sys

from typing import Callable, Iterable, TYPE_CHECKING

import numpy as np

from bayesgraph.exceptions import CyclicGraphError, ShapeMismatchError

if TYPE_CHECKING:
    from bayesgraph import custom_types
    from bayesgraph.model.components import abstract_model_component


def lazy_import(name: str):
    """Import a module only when it is first needed.

    This function implements lazy module importing so that modules which depend on
    each other (e.g. vertices and the transformations built by their operators)
    can reference one another at import time.

    :param name: The fully qualified module name to import
    :type name: str

    :returns: The imported module
    :rtype: module

    :raises ImportError: If the specified module cannot be found

    .. note::
        If the module is already imported, returns the cached version
        from sys.modules for efficiency.
    """
    # Check if the module is already imported
    if name in sys.modules:
        return sys.modules[name]

    # If not, import it lazily (modified from here:
    # https://docs.python.org/3/library/importlib.html#implementing-lazy-imports)
    spec = importlib.util.find_spec(name)
    if spec is None:
        raise ImportError(f"Module '{name}' not found.")

    # Create the module with a lazy loader
    spec.loader = importlib.util.LazyLoader(spec.loader)
    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    spec.loader.exec_module(module)

    return module


def collect_vertices(
    start: Iterable["abstract_model_component.Vertex"],
    relatives: Callable[..., Iterable["abstract_model_component.Vertex"]],
) -> list["abstract_model_component.Vertex"]:
    """Collect every vertex reachable from ``start`` by repeatedly following ``relatives``.

    The traversal uses an explicit stack, so arbitrarily deep graphs do not hit the
    recursion limit. Vertices are returned in discovery order, starting vertices
    included.

    :param start: Vertices the traversal starts from
    :type start: Iterable[abstract_model_component.Vertex]
    :param relatives: Function returning the vertices to visit next from a vertex
    :type relatives: Callable[..., Iterable[abstract_model_component.Vertex]]

    :returns: The reachable vertices
    :rtype: list[abstract_model_component.Vertex]
    """
    seen = set()
    found = []
    stack = list(start)
    while stack:
        vertex = stack.pop()
        if vertex in seen:
            continue
        seen.add(vertex)
        found.append(vertex)
        stack.extend(relative for relative in relatives(vertex) if relative not in seen)
    return found


def topological_sort(
    vertices: Iterable["abstract_model_component.Vertex"],
) -> list["abstract_model_component.Vertex"]:
    """Order vertices so that every vertex comes after all of its parents.

    Only parent edges between members of ``vertices`` are considered. Ties are
    broken by vertex id, which makes the ordering deterministic.

    :param vertices: Vertices to sort
    :type vertices: Iterable[abstract_model_component.Vertex]

    :returns: Vertices in topological order
    :rtype: list[abstract_model_component.Vertex]

    :raises CyclicGraphError: If the parent relation contains a cycle
    """
    members = sorted(set(vertices), key=lambda vertex: vertex.id)
    member_set = set(members)

    # Count in-set parents and record in-set children
    n_parents = {}
    children = {vertex: [] for vertex in members}
    for vertex in members:
        in_set = [parent for parent in vertex.parents if parent in member_set]
        n_parents[vertex] = len(in_set)
        for parent in in_set:
            children[parent].append(vertex)

    # Kahn's algorithm. The ready heap is processed lowest id first.
    ready = [(vertex.id, vertex) for vertex in members if n_parents[vertex] == 0]
    heapq.heapify(ready)
    ordered = []
    while ready:
        _, vertex = heapq.heappop(ready)
        ordered.append(vertex)
        for child in children[vertex]:
            n_parents[child] -= 1
            if n_parents[child] == 0:
                heapq.heappush(ready, (child.id, child))

    if len(ordered) != len(members):
        remaining = sorted(vertex.id for vertex in members if n_parents[vertex] > 0)
        raise CyclicGraphError(
            f"The parent relation contains a cycle through vertex ids {remaining}"
        )

    return ordered


def broadcast_shapes(
    *shapes: tuple["custom_types.Integer", ...], context: str = ""
) -> tuple[int, ...]:
    """Broadcast shapes following NumPy rules, raising a package error on failure.

    :param shapes: Shapes to broadcast
    :type shapes: tuple[custom_types.Integer, ...]
    :param context: Description of the caller used in the error message. Defaults
        to "".
    :type context: str

    :returns: The broadcast shape
    :rtype: tuple[int, ...]

    :raises ShapeMismatchError: If the shapes are not broadcast-compatible
    """
    try:
        return tuple(int(dim) for dim in np.broadcast_shapes(*shapes))
    except ValueError as error:
        raise ShapeMismatchError(
            f"Shapes {', '.join(map(str, shapes))} are not broadcastable"
            + (f" {context}" if context else "")
        ) from error


def normalize_shape(
    shape: "tuple[custom_types.Integer, ...] | custom_types.Integer",
) -> tuple[int, ...]:
    """Convert an integer or sequence of integers to a shape tuple."""
    try:
        len(shape)
    except TypeError:
        shape = (shape,)
    return tuple(int(dim) for dim in shape)


def is_integer_valued(array: np.ndarray) -> bool:
    """Check whether every element of an array holds an integer value.

    :param array: Array to check
    :type array: np.ndarray

    :returns: True if all elements are finite whole numbers
    :rtype: bool
    """
    if np.issubdtype(array.dtype, np.integer) or np.issubdtype(array.dtype, np.bool_):
        return True
    return bool(np.all(np.isfinite(array)) and np.all(np.mod(array, 1) == 0))
