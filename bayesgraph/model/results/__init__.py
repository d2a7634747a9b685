# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Sampling results for bayesgraph networks.

This submodule holds the containers returned by the samplers of
:py:mod:`bayesgraph.model.mcmc`:

   1. :py:class:`bayesgraph.model.results.samples.NetworkSamples`, the trace of
      every recorded vertex plus the joint log-probability after every iteration,
      with burn-in removal, thinning, event probabilities and export to
      :py:class:`xarray.Dataset`.
   2. :py:class:`bayesgraph.model.results.samples.VertexSamples`, the series of a
      single vertex with its summary statistics.
"""

from bayesgraph.model.results.samples import NetworkSamples, NetworkState, VertexSamples
