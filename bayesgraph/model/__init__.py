# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Network construction and inference for bayesgraph.

Models are graphs of :py:mod:`vertices <bayesgraph.model.components>`. Once built,
a graph is wrapped in a :py:class:`~bayesgraph.model.network.BayesianNetwork`,
which exposes the joint log-probability of the current state and its gradient.
Posterior samples are then drawn with the Metropolis-Hastings sampler of
:py:mod:`bayesgraph.model.mcmc` and returned as
:py:class:`~bayesgraph.model.results.samples.NetworkSamples`.

A typical workflow looks like this:

    1. **Model Definition**: Build vertices and connect them through their
       parameters and operators.
    2. **Conditioning**: Observe data on the vertices that hold it.
    3. **Network Construction**: Wrap the graph in a ``BayesianNetwork`` and move
       it into a state of non-zero probability.
    4. **Sampling**: Run Metropolis-Hastings over the latent vertices.
    5. **Analysis**: Drop the burn-in, summarize or export the trace, or
       approximate a posterior with :py:mod:`bayesgraph.model.kde` to reuse it as
       a prior.

Example:
    >>> import bayesgraph as bg
    >>> mu = bg.parameters.Gaussian(mu=0.0, sigma=1.0)
    >>> y = bg.parameters.Gaussian(mu=mu, sigma=0.5, shape=(3,))
    >>> y.observe([0.9, 1.1, 1.4])
    >>> network = bg.BayesianNetwork([y])
    >>> samples = bg.sample(network, [mu], 5000, rng=bg.RandomSource(0))
    >>> samples.drop(1000).get(mu).mean()
"""
