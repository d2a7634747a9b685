# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Gaussian kernel density approximation of sampled posteriors.

A posterior trace of a scalar vertex can be turned into a
:py:class:`~bayesgraph.model.components.parameters.KDEVertex`, which can then act
as the prior of a new model, e.g., to chain inferences.

Example:
    >>> samples = mcmc.sample(network, [mu], 5000).drop(1000)
    >>> mu_posterior = GaussianKDE.approximate(samples.get(mu))
    >>> y = parameters.Gaussian(mu=mu_posterior, sigma=1.0)
"""

from __future__ import annotations

from typing import Optional, TYPE_CHECKING, Union

import numpy as np

from bayesgraph.exceptions import ConstructionError
from bayesgraph.model.components.parameters import KDEVertex
from bayesgraph.model.results.samples import VertexSamples

if TYPE_CHECKING:
    from bayesgraph import custom_types


class GaussianKDE:
    """Builders of Gaussian kernel density vertices."""

    @staticmethod
    def approximate(
        vertex_samples: Union[VertexSamples, "custom_types.SampleType"],
        bandwidth: Optional["custom_types.Float"] = None,
        label: Optional[str] = None,
    ) -> KDEVertex:
        """Approximate the distribution of scalar samples with a Gaussian KDE.

        :param vertex_samples: Samples of a scalar vertex, either as returned by
            :py:meth:`NetworkSamples.get() <bayesgraph.model.results.samples.NetworkSamples.get>`
            or as a one-dimensional array
        :type vertex_samples: Union[VertexSamples, custom_types.SampleType]
        :param bandwidth: Kernel standard deviation. Defaults to None, which uses
            Scott's rule.
        :type bandwidth: Optional[custom_types.Float]
        :param label: Label of the new vertex. Defaults to None.
        :type label: Optional[str]

        :returns: The approximating vertex
        :rtype: KDEVertex

        :raises ConstructionError: If the samples are empty or not scalar
        """
        if isinstance(vertex_samples, VertexSamples):
            values = vertex_samples.as_list()
            if any(np.ndim(value) != 0 for value in values):
                raise ConstructionError(
                    "Kernel density approximation needs samples of a scalar vertex"
                )
            samples = np.asarray(values, dtype=np.float64)
        else:
            samples = np.asarray(vertex_samples, dtype=np.float64)

        if samples.ndim != 1 or samples.size == 0:
            raise ConstructionError(
                "Kernel density approximation needs a non-empty series of scalars, "
                f"got shape {samples.shape}"
            )
        return KDEVertex(samples, bandwidth=bandwidth, label=label)
