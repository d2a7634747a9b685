# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Default configuration values for bayesgraph components.

This module centralizes default values used across the package. It is organized
into logical groups covering:
    - Network probing
    - Distribution kernels
    - Metropolis-Hastings sampling
    - Numerical checks used by the test-suite and gradient validation

Default values cannot be programmatically altered. Every public call that uses one
of these values also accepts it as an explicit argument.
"""

# Network probing defaults
DEFAULT_PROBE_ATTEMPTS: int = 10000
"""Default number of prior resamples tried when searching for a feasible state.

:type: int
"""

# Distribution kernel defaults
DEFAULT_MAX_REJECTION_ROUNDS: int = 10000
"""Maximum number of vectorized rounds a rejection sampler may run.

Every round redraws only the elements rejected so far. Exhausting this bound
raises :py:class:`~bayesgraph.exceptions.NumericError`.

:type: int
"""

DEFAULT_SIMPLEX_TOLERANCE: float = 1e-6
"""Absolute tolerance used when checking that probabilities sum to one.

:type: float
"""

# Metropolis-Hastings defaults
DEFAULT_VARIABLES_PER_STEP: int = 1
"""Default number of latent vertices given a new proposal every iteration.

:type: int
"""

DEFAULT_PROPOSAL_SIGMA: float = 1.0
"""Default standard deviation of the Gaussian random-walk proposal.

:type: float
"""

DEFAULT_LOW_ACCEPTANCE_WARNING: float = 0.01
"""Acceptance rate below which the sampler warns that the chain barely moved.

:type: float
"""

# Numerical checks
DEFAULT_FINITE_DIFFERENCE_STEP: float = 1e-6
"""Step size used for centered finite-difference gradient estimates.

:type: float
"""
