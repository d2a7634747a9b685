# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Abstract base class for the vertices of a bayesgraph model.

This module defines the foundational class that every node of a model graph
inherits from: constants, probabilistic vertices and the deterministic
transformations built from them. Users typically do not interact with this module
directly; instead, they use the concrete implementations provided in the
:py:mod:`bayesgraph.model.components.constants`,
:py:mod:`bayesgraph.model.components.parameters` and
:py:mod:`bayesgraph.model.components.transformations.transformed_parameters`
submodules.

Core Abstractions:

    - **Vertex Identity**: Every vertex receives a monotonically increasing integer
      id that is never reused
    - **Vertex Kind**: A closed tag distinguishing deterministic from probabilistic
      vertices
    - **Component Hierarchy**: Parent-child relationships between vertices
    - **Shape Broadcasting**: Vertex shapes are resolved from the shapes of parents
    - **Value Management**: Cached values with explicit setting, derivation of unset
      deterministic values, and cascading updates to descendants

Graph traversals in this module use explicit stacks rather than recursion so that
deep models do not hit Python's recursion limit.
"""

from __future__ import annotations

import enum
import itertools

from abc import ABC, abstractmethod
from typing import Container, Optional, TYPE_CHECKING

import numpy as np

from bayesgraph import utils
from bayesgraph.exceptions import (
    ShapeMismatchError,
    UnsupportedDifferentiationError,
    ValueNotSetError,
)

# Lazy imports to avoid circular imports
constants_module = utils.lazy_import("bayesgraph.model.components.constants")
transformed_parameters = utils.lazy_import(
    "bayesgraph.model.components.transformations.transformed_parameters"
)
differentiator_module = utils.lazy_import("bayesgraph.model.autodiff.differentiator")

if TYPE_CHECKING:
    from bayesgraph import custom_types
    from bayesgraph.model.autodiff.dual_number import DualNumber
    from bayesgraph.rng import RandomSource

# Source of vertex ids. Ids are unique for the lifetime of the process.
_VERTEX_IDS = itertools.count()


class VertexKind(enum.Enum):
    """Closed set of vertex kinds."""

    DETERMINISTIC = "deterministic"
    PROBABILISTIC = "probabilistic"


class Vertex(ABC):
    """Abstract base class for all vertices in a bayesgraph model.

    :param shape: Shape of the vertex value. Broadcast against the shapes of the
        parents. Defaults to scalar ().
    :type shape: Union[tuple[custom_types.Integer, ...], custom_types.Integer]
    :param label: Optional human-readable label. Defaults to None.
    :type label: Optional[str]
    :param model_params: Named parameters that this vertex depends on. Raw values
        are wrapped in :py:class:`~bayesgraph.model.components.constants.ConstantVertex`
        instances.
    :type model_params: custom_types.ParameterType

    :cvar KIND: Whether the vertex is deterministic or probabilistic
    :cvar DTYPE: NumPy dtype of the vertex value. None means it is inferred from
        the parents.
    :cvar DIFFERENTIABLE: Whether the vertex participates in differentiation

    The class provides core functionality for:

    - Vertex relationship management (parents and children)
    - Shape validation and broadcasting
    - Getting, setting, deriving and sampling values
    - Graph traversal (ancestors, descendants, connected graph)
    """

    KIND: VertexKind
    """Class variable giving the kind of the vertex."""

    DTYPE: Optional[type] = np.float64
    """Class variable giving the dtype of the vertex value."""

    DIFFERENTIABLE: bool = False
    """
    Class variable noting whether the vertex carries a dual number. Only
    floating-point vertices ever do.
    """

    def __init__(
        self,
        *,
        shape: "tuple[custom_types.Integer, ...] | custom_types.Integer" = (),
        label: Optional[str] = None,
        **model_params: "custom_types.ParameterType",
    ):
        # Assign identity
        self._id: int = next(_VERTEX_IDS)
        self._label = label

        # Define placeholder variables
        self._parents: dict[str, Vertex]
        self._shape: tuple[int, ...] = utils.normalize_shape(shape)
        self._children: list[Vertex] = []
        self._value: Optional[np.ndarray] = None
        self._version: int = 0

        # Set parents and link parent and child vertices
        self._set_parents(model_params)
        for parent in self.parents:
            parent._record_child(self)

        # Resolve dtype and shape
        self._dtype = np.dtype(self._resolve_dtype())
        self._set_shape()

    def _set_parents(self, model_params: dict[str, "custom_types.ParameterType"]) -> None:
        """Establish parent relationships, wrapping raw values in constants.

        :param model_params: Dictionary of parameter names to values/vertices
        :type model_params: dict[str, custom_types.ParameterType]
        """
        self._parents = {}
        for name, val in model_params.items():
            if isinstance(val, Vertex):
                self._parents[name] = val
            else:
                self._parents[name] = constants_module.ConstantVertex(val)

    def _record_child(self, child: "Vertex") -> None:
        """Record a child vertex. A child using this vertex twice is recorded once."""
        if child not in self._children:
            self._children.append(child)

    def _resolve_dtype(self) -> "np.dtype | type":
        """Get the dtype of this vertex. By default, this is ``DTYPE``. If that is
        None, the dtype is the promoted dtype of the parents.
        """
        if self.DTYPE is not None:
            return self.DTYPE
        return np.result_type(*(parent.dtype for parent in self.parents))

    def _infer_shape(self, parent_shapes: dict[str, tuple[int, ...]]) -> tuple[int, ...]:
        """Compute the shape of the vertex from the shapes of its parents.

        The default broadcasts the requested shape with every parent shape.
        Subclasses that reduce or rearrange dimensions override this.

        :raises ShapeMismatchError: If shapes are not broadcastable or the provided
            shape conflicts with the broadcasted shape
        """
        broadcasted_shape = utils.broadcast_shapes(
            self._shape,
            *parent_shapes.values(),
            context=f"while initializing instance of {self.__class__.__name__}",
        )

        # The broadcasted shape must be the same as the shape of the vertex if
        # it is not 0-dimensional.
        if broadcasted_shape != self._shape and self._shape != ():
            raise ShapeMismatchError(
                "Provided shape does not match broadcasted shapes of parents while "
                f"initializing instance of {self.__class__.__name__}. {self._shape} "
                f"!= {broadcasted_shape}"
            )
        return broadcasted_shape

    def _set_shape(self) -> None:
        """Validate and set the vertex shape."""
        self._shape = tuple(
            int(dim)
            for dim in self._infer_shape(
                {name: parent.shape for name, parent in self._parents.items()}
            )
        )

    @abstractmethod
    def _draw(
        self,
        level_draws: dict[str, np.ndarray],
        rng: Optional["RandomSource"],
    ) -> "custom_types.SampleType":
        """Compute a value of this vertex from values of its parents.

        :param level_draws: Values of the parent vertices, keyed by parameter name
        :type level_draws: dict[str, np.ndarray]
        :param rng: Random source. Deterministic vertices ignore it.
        :type rng: Optional[RandomSource]

        :returns: A value of the vertex
        :rtype: custom_types.SampleType
        """

    def _as_value(self, value: "custom_types.SampleType") -> np.ndarray:
        """Convert a raw value to a fresh array of this vertex's dtype and shape.

        :raises ShapeMismatchError: If the value does not have the vertex's shape.
            Scalars are broadcast to the vertex's shape.
        """
        array = np.array(value, dtype=self._dtype, copy=True)
        if array.shape != self._shape:
            if array.ndim != 0:
                raise ShapeMismatchError(
                    f"Value of shape {array.shape} cannot be assigned to "
                    f"{self.describe()} of shape {self._shape}"
                )
            array = np.full(self._shape, array, dtype=self._dtype)
        return array

    def get_parent_values(self) -> dict[str, np.ndarray]:
        """Get the current values of all parents, keyed by parameter name."""
        return {name: parent.get_value() for name, parent in self._parents.items()}

    def get_value(self) -> np.ndarray:
        """Get the cached value of the vertex.

        An unset deterministic vertex is derived from the current values of its
        ancestors. The derived values are cached along the way.

        :returns: The value of the vertex
        :rtype: np.ndarray

        :raises ValueNotSetError: If the value is unset and cannot be derived
            because an unset probabilistic vertex lies on the way
        """
        if self._value is None:
            self._derive_unset()
        return self._value

    @property
    def value(self) -> np.ndarray:
        """Property form of :py:meth:`get_value`."""
        return self.get_value()

    def has_value(self) -> bool:
        """Check whether the vertex currently holds a value."""
        return self._value is not None

    def set_value(self, value: "custom_types.SampleType") -> None:
        """Set the value of the vertex. The value is copied.

        Descendants are not updated. Use :py:meth:`set_and_cascade` for that.

        :param value: The new value. Must have the vertex's shape, or be a scalar.
        :type value: custom_types.SampleType

        :raises ShapeMismatchError: If the value has the wrong shape
        """
        self._value = self._as_value(value)
        self._version += 1

    def _clear_value(self) -> None:
        self._value = None
        self._version += 1

    def _derive_unset(self) -> None:
        """Calculate every unset deterministic vertex needed to give this one a value."""
        # Walk up through unset deterministic vertices
        to_derive = utils.collect_vertices(
            [self],
            lambda vertex: (
                [parent for parent in vertex.parents if not parent.has_value()]
                if vertex.KIND is VertexKind.DETERMINISTIC
                else []
            ),
        )

        # Unset probabilistic vertices cannot be derived
        missing = [vertex for vertex in to_derive if vertex.KIND is VertexKind.PROBABILISTIC]
        if missing:
            raise ValueNotSetError(
                f"Cannot get the value of {self.describe()}: "
                f"{', '.join(vertex.describe() for vertex in missing)} has no value"
            )

        # Calculate in topological order
        for vertex in utils.topological_sort(to_derive):
            vertex.calculate()

    def get_derived_value(self) -> np.ndarray:
        """Compute the value of the vertex from the current values of its parents
        without storing it.
        """
        return self._as_value(self._draw(self.get_parent_values(), None))

    def calculate(self) -> np.ndarray:
        """Recompute and store the value of the vertex from its parents' current values.

        Probabilistic vertices are not recomputed; their current value is returned.

        :returns: The value of the vertex
        :rtype: np.ndarray
        """
        if self.KIND is VertexKind.PROBABILISTIC:
            return self.get_value()
        self._value = self.get_derived_value()
        self._version += 1
        return self._value

    def sample(self, rng: "RandomSource") -> np.ndarray:
        """Draw a fresh value for this vertex without modifying any state.

        Probabilistic vertices draw from their own distribution parametrized by
        the current values of their parents. Deterministic vertices evaluate their
        operator on sampled values of their parents, sampling every ancestor up to
        (and including) the nearest probabilistic vertices once.

        :param rng: Random source to draw from
        :type rng: RandomSource

        :returns: The sampled value
        :rtype: np.ndarray
        """
        if self.KIND is VertexKind.PROBABILISTIC:
            return self._as_value(self._draw(self.get_parent_values(), rng))

        # Ancestors up to the probabilistic boundary
        ancestors = utils.collect_vertices(
            [self],
            lambda vertex: (
                vertex.parents if vertex.KIND is VertexKind.DETERMINISTIC else []
            ),
        )

        sampled: dict[Vertex, np.ndarray] = {}
        for vertex in utils.topological_sort(ancestors):
            if vertex.KIND is VertexKind.PROBABILISTIC:
                sampled[vertex] = vertex.sample(rng)
            else:
                sampled[vertex] = vertex._as_value(
                    vertex._draw(
                        {name: sampled[parent] for name, parent in vertex._parents.items()},
                        rng,
                    )
                )
        return sampled[self]

    def lazy_eval(self, rng: "RandomSource") -> np.ndarray:
        """Give a value to every unset ancestor of this vertex, and to this vertex.

        Unset probabilistic vertices are sampled, unset deterministic vertices are
        calculated. Vertices that already hold a value are left untouched.

        :returns: The value of the vertex
        :rtype: np.ndarray
        """
        unset = utils.collect_vertices(
            [self],
            lambda vertex: [parent for parent in vertex.parents if not parent.has_value()],
        )
        for vertex in utils.topological_sort(unset):
            if vertex.has_value():
                continue
            if vertex.KIND is VertexKind.PROBABILISTIC:
                vertex.set_value(vertex.sample(rng))
            else:
                vertex.calculate()
        return self.get_value()

    def get_deterministic_descendants(
        self, within: Optional[Container["Vertex"]] = None
    ) -> list["Vertex"]:
        """Get the deterministic descendants reachable through deterministic vertices
        only, in topological order. The vertex itself is not included.

        :param within: If given, only children contained in it are followed.
            Defaults to None, which follows every child.
        :type within: Optional[Container[Vertex]]
        """

        def deterministic_children(vertex: "Vertex") -> list["Vertex"]:
            return [
                child
                for child in vertex.children
                if child.KIND is VertexKind.DETERMINISTIC
                and (within is None or child in within)
            ]

        descendants = utils.collect_vertices(
            deterministic_children(self), deterministic_children
        )
        return utils.topological_sort(descendants)

    def set_and_cascade(
        self,
        value: "custom_types.SampleType",
        within: Optional[Container["Vertex"]] = None,
    ) -> None:
        """Set the value and recalculate every deterministic descendant.

        :param value: The new value
        :type value: custom_types.SampleType
        :param within: If given, only descendants contained in it are
            recalculated. Defaults to None.
        :type within: Optional[Container[Vertex]]
        """
        self.set_value(value)
        for descendant in self.get_deterministic_descendants(within):
            descendant.calculate()

    def get_dual_number(self) -> "DualNumber":
        """Compute the dual number of this vertex with respect to every latent
        ancestor reachable through differentiable vertices.

        :raises UnsupportedDifferentiationError: If the computation reaches an
            operator with no derivative
        """
        return differentiator_module.Differentiator().calculate_dual_number(self)

    def calculate_dual(self, parent_duals: dict[str, "DualNumber"]) -> "DualNumber":
        """Derivative rule of the vertex.

        :param parent_duals: Dual numbers of the parents keyed by parameter name.
            Parents that do not participate in differentiation are constants.
        :type parent_duals: dict[str, DualNumber]

        :returns: Dual number of this vertex
        :rtype: DualNumber

        :raises UnsupportedDifferentiationError: If the vertex has no derivative rule
        """
        raise UnsupportedDifferentiationError(
            f"{self.describe()} does not define a derivative"
        )

    def describe(self) -> str:
        """Short description used in error messages."""
        label = f" '{self._label}'" if self._label else ""
        return f"{self.__class__.__name__}{label} (id={self._id})"

    def __repr__(self) -> str:
        return f"<{self.describe()}, shape={self._shape}>"

    def __getitem__(self, key: "custom_types.IndexType") -> "Vertex":
        """See :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.PluckParameter`."""
        return transformed_parameters.PluckParameter(self, key)

    @property
    def id(self) -> int:
        """Unique, monotonically increasing identifier of the vertex."""
        return self._id

    @property
    def label(self) -> Optional[str]:
        """Optional human-readable label of the vertex."""
        return self._label

    @label.setter
    def label(self, label: Optional[str]) -> None:
        self._label = label

    @property
    def shape(self) -> tuple[int, ...]:
        """Shape of the vertex value."""
        return self._shape

    @property
    def ndim(self) -> int:
        """Number of dimensions of the vertex value."""
        return len(self._shape)

    @property
    def dtype(self) -> np.dtype:
        """NumPy dtype of the vertex value."""
        return self._dtype

    @property
    def differentiable(self) -> bool:
        """Whether the vertex carries a dual number."""
        return self.DIFFERENTIABLE and np.issubdtype(self._dtype, np.floating)

    @property
    def version(self) -> int:
        """Counter incremented every time the value changes."""
        return self._version

    @property
    def is_probabilistic(self) -> bool:
        """Whether the vertex is probabilistic."""
        return self.KIND is VertexKind.PROBABILISTIC

    @property
    def parents(self) -> list["Vertex"]:
        """Unique parent vertices in parameter order."""
        return list(dict.fromkeys(self._parents.values()))

    @property
    def named_parents(self) -> dict[str, "Vertex"]:
        """Parent vertices keyed by parameter name."""
        return dict(self._parents)

    @property
    def children(self) -> list["Vertex"]:
        """Vertices that depend directly on this one."""
        return list(self._children)

    @property
    def connected_graph(self) -> list["Vertex"]:
        """Every vertex reachable from this one through parent or child edges,
        ordered by id.
        """
        return sorted(
            utils.collect_vertices([self], lambda vertex: vertex.parents + vertex.children),
            key=lambda vertex: vertex.id,
        )
