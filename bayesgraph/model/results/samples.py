# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Containers for the traces recorded while sampling a network.

:py:class:`NetworkSamples` holds, for every recorded vertex, the ordered series of
values taken by the vertex (one entry per sampler iteration) along with the joint
log-probability of the network after every iteration. Views such as
:py:meth:`NetworkSamples.drop` and :py:meth:`NetworkSamples.down_sample` return
new containers and never modify the original.

Per-vertex summaries are available through :py:class:`VertexSamples`, returned by
:py:meth:`NetworkSamples.get`, and the whole trace can be exported to an
:py:class:`xarray.Dataset` for analysis with the scientific Python stack.
"""

from __future__ import annotations

from collections import Counter
from typing import Callable, Optional, TYPE_CHECKING, Union

import numpy as np
import xarray as xr

from bayesgraph.exceptions import DomainError, ShapeMismatchError, VertexNotSampledError
from bayesgraph.model.components.abstract_model_component import Vertex

if TYPE_CHECKING:
    from bayesgraph import custom_types


def _vertex_id(vertex: Union[Vertex, int]) -> int:
    return vertex.id if isinstance(vertex, Vertex) else int(vertex)


class VertexSamples:
    """Ordered values taken by a single vertex.

    :param values: One value per sampler iteration
    :type values: list[np.ndarray]
    """

    def __init__(self, values: list[np.ndarray]):
        self._values = values

    def as_list(self) -> list[np.ndarray]:
        """Values as a list, oldest first."""
        return list(self._values)

    def as_array(self) -> np.ndarray:
        """Values stacked along a new leading sample axis."""
        if not self._values:
            raise DomainError("No samples to stack")
        return np.stack(self._values)

    def mean(self) -> np.ndarray:
        """Element-wise mean over samples."""
        return np.asarray(self.as_array().mean(axis=0))

    def variance(self) -> np.ndarray:
        """Element-wise population variance over samples."""
        return np.asarray(self.as_array().var(axis=0))

    def mode(self) -> np.ndarray:
        """Most frequent value. Ties go to the value seen first."""
        if not self._values:
            raise DomainError("No samples to take the mode of")
        counts = Counter(value.tobytes() for value in self._values)
        most_common = max(counts.values())
        return next(
            value.copy()
            for value in self._values
            if counts[value.tobytes()] == most_common
        )

    def probability(self, predicate: Callable[[np.ndarray], bool]) -> float:
        """Fraction of samples for which ``predicate`` holds."""
        if not self._values:
            raise DomainError("No samples to estimate a probability from")
        return sum(bool(predicate(value)) for value in self._values) / len(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"VertexSamples(n={len(self._values)})"


class NetworkState:
    """Values of the recorded vertices at one sampler iteration.

    Values are looked up by vertex or by vertex id.
    """

    def __init__(self, values: dict[int, np.ndarray]):
        self._values = values

    def get(self, vertex: Union[Vertex, int]) -> np.ndarray:
        vertex_id = _vertex_id(vertex)
        if vertex_id not in self._values:
            raise VertexNotSampledError(f"Vertex {vertex_id} was not sampled")
        return self._values[vertex_id]

    __getitem__ = get


class NetworkSamples:
    """Trace of the recorded vertices of a network.

    :param samples: Series of values keyed by vertex id. Every series must have
        the same length.
    :type samples: dict[int, list[np.ndarray]]
    :param log_probs: Joint log-probability after every iteration. Defaults to
        None.
    :type log_probs: Optional[list[float]]
    :param labels: Human-readable names keyed by vertex id, used when exporting.
        Defaults to None.
    :type labels: Optional[dict[int, Optional[str]]]

    :raises ShapeMismatchError: If the series have different lengths
    """

    def __init__(
        self,
        samples: dict[int, list[np.ndarray]],
        log_probs: Optional[list[float]] = None,
        labels: Optional[dict[int, Optional[str]]] = None,
    ):
        lengths = {len(series) for series in samples.values()}
        if log_probs is not None:
            lengths.add(len(log_probs))
        if len(lengths) > 1:
            raise ShapeMismatchError(
                f"Every recorded series must have the same length, got {sorted(lengths)}"
            )

        self._samples = samples
        self._log_probs = log_probs
        self._labels = labels or {}
        self._size = lengths.pop() if lengths else 0

    def _select(self, index: slice) -> "NetworkSamples":
        return NetworkSamples(
            {vertex_id: series[index] for vertex_id, series in self._samples.items()},
            log_probs=None if self._log_probs is None else self._log_probs[index],
            labels=self._labels,
        )

    def drop(self, k: "custom_types.Integer") -> "NetworkSamples":
        """Remove the first ``k`` entries, e.g., the burn-in of a chain.

        :raises DomainError: If ``k`` is negative or larger than the trace
        """
        if not 0 <= k <= self._size:
            raise DomainError(f"Cannot drop {k} of {self._size} samples")
        return self._select(slice(int(k), None))

    def down_sample(self, m: "custom_types.Integer") -> "NetworkSamples":
        """Keep every ``m``-th entry, starting with the first.

        :raises DomainError: If ``m`` is smaller than one
        """
        if m < 1:
            raise DomainError(f"Down-sampling interval must be at least 1, got {m}")
        return self._select(slice(None, None, int(m)))

    def get(self, vertex: Union[Vertex, int]) -> VertexSamples:
        """Samples of one vertex, given the vertex or its id.

        :raises VertexNotSampledError: If the vertex was not recorded
        """
        vertex_id = _vertex_id(vertex)
        if vertex_id not in self._samples:
            raise VertexNotSampledError(f"Vertex {vertex_id} was not sampled")
        return VertexSamples(self._samples[vertex_id])

    __getitem__ = get

    def get_network_state(self, index: "custom_types.Integer") -> NetworkState:
        """Values of every recorded vertex at one iteration."""
        return NetworkState(
            {vertex_id: series[index] for vertex_id, series in self._samples.items()}
        )

    def probability(self, predicate: Callable[[NetworkState], bool]) -> float:
        """Fraction of iterations whose recorded state satisfies ``predicate``.

        :raises DomainError: If the trace is empty
        """
        if self._size == 0:
            raise DomainError("No samples to estimate a probability from")
        return (
            sum(bool(predicate(self.get_network_state(i))) for i in range(self._size))
            / self._size
        )

    @property
    def log_probs(self) -> Optional[np.ndarray]:
        """Joint log-probability after every iteration, if recorded."""
        return None if self._log_probs is None else np.asarray(self._log_probs)

    @property
    def vertex_ids(self) -> list[int]:
        return list(self._samples)

    def _varname(self, vertex_id: int) -> str:
        return self._labels.get(vertex_id) or f"vertex_{vertex_id}"

    def to_xarray(self) -> xr.Dataset:
        """Export the trace to an :py:class:`xarray.Dataset`.

        Every recorded vertex becomes a data variable with a leading ``draw``
        dimension followed by one dimension per axis of the vertex. Labelled
        vertices are named by their label, others ``vertex_<id>``. The joint
        log-probability, if recorded, is stored as ``log_prob``.

        :returns: The trace as a dataset
        :rtype: xr.Dataset
        """
        data_vars = {}
        for vertex_id, series in self._samples.items():
            name = self._varname(vertex_id)
            values = np.stack(series) if series else np.empty((0,))
            dims = ["draw"] + [f"{name}_dim_{i}" for i in range(values.ndim - 1)]
            data_vars[name] = xr.DataArray(
                values, dims=dims, attrs={"vertex_id": vertex_id}
            )
        if self._log_probs is not None:
            data_vars["log_prob"] = xr.DataArray(
                np.asarray(self._log_probs, dtype=float), dims=["draw"]
            )
        return xr.Dataset(data_vars=data_vars, coords={"draw": np.arange(self._size)})

    def __len__(self) -> int:
        return self._size

    def __repr__(self) -> str:
        return f"NetworkSamples(n={self._size}, vertices={self.vertex_ids})"
