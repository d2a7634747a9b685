# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Forward-mode automatic differentiation of vertex graphs with dual numbers."""
