# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Deterministic transformations of bayesgraph vertices.

Every transformation evaluates its operator with NumPy on the values of its
parents and, where the operator has a derivative, propagates dual numbers so that
gradients flow through it. Transformations are normally built through vertex
operators (``a + b``, ``a & b``, ``x[0]``) or :py:mod:`bayesgraph.operations`.
"""
