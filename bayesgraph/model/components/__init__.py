# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Vertices from which bayesgraph networks are built.

Vertices fall under three main categories:

    - :py:class:`Constants <bayesgraph.model.components.constants.ConstantVertex>`,
      which hold fixed values and hyperparameters.
    - :py:class:`Probabilistic vertices <bayesgraph.model.components.parameters.ProbabilisticVertex>`,
      which represent random variables. These are either inferred (latent) or
      hold data (observed).
    - :py:class:`Transformed parameters <bayesgraph.model.components.transformations.transformed_parameters.TransformedParameter>`,
      which are deterministic functions of other vertices and result from the
      operators of vertices or the :py:mod:`bayesgraph.operations` module.

The sampling and density kernels behind probabilistic vertices live in
:py:mod:`bayesgraph.model.components.distributions`.
"""
