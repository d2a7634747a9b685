# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Sampling, log-density and gradient kernels of the supported distributions.

Kernels work on raw NumPy arrays and know nothing of vertices:

    - :py:mod:`~bayesgraph.model.components.distributions.base` holds the
      parameter validation and broadcasting shared by every kernel.
    - :py:mod:`~bayesgraph.model.components.distributions.continuous` holds the
      Gaussian, uniform, exponential, gamma, beta and kernel density kernels.
    - :py:mod:`~bayesgraph.model.components.distributions.discrete` holds the
      Bernoulli, binomial, categorical and multinomial kernels.
"""
