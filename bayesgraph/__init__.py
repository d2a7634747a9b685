# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
bayesgraph: Probabilistic graphical models with forward-mode differentiation and
Metropolis-Hastings sampling.

bayesgraph builds probabilistic models as directed acyclic graphs of random and
deterministic tensor-valued vertices, differentiates those graphs analytically
with dual numbers, and draws posterior samples with Metropolis-Hastings.

Key Features:
    - Tensor-valued vertices with NumPy broadcasting semantics
    - Operator overloading for building deterministic transformations
    - Forward-mode automatic differentiation through every differentiable vertex
    - Gaussian, uniform, exponential, gamma, beta, Bernoulli, binomial,
      categorical and multinomial distributions
    - Metropolis-Hastings sampling with prior and random-walk proposals
    - Kernel density approximation of posteriors for reuse as priors
    - Type-safe model construction with runtime type checking

Randomness is never global: every sampling call takes an explicit
:py:class:`~bayesgraph.rng.RandomSource`.

Example:
    >>> import bayesgraph as bg
    >>> rng = bg.RandomSource(42)
    >>> rate = bg.parameters.Gamma(location=0.0, scale=1.0, alpha=2.0)
    >>> waits = bg.parameters.Exponential(location=0.0, scale=rate, shape=(4,))
    >>> waits.observe([0.5, 1.2, 0.8, 2.0])
    >>> samples = bg.sample(bg.BayesianNetwork([waits]), [rate], 2000, rng=rng)
"""

from typeguard import install_import_hook

# Define the version
__version__ = "0.1.0"

# Set up type checking
install_import_hook("bayesgraph")

# Import objects that should be easily accessible from the package level
# pylint: disable=wrong-import-position
from bayesgraph import exceptions, operations
from bayesgraph.model.components import parameters
from bayesgraph.model.components.constants import ConstantVertex
from bayesgraph.model.kde import GaussianKDE
from bayesgraph.model.mcmc import MetropolisHastings, sample
from bayesgraph.model.network import BayesianNetwork
from bayesgraph.model.results.samples import NetworkSamples
from bayesgraph.rng import RandomSource
