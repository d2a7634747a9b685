# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Tests for vertex construction, values and operators."""

import numpy as np
import pytest

from bayesgraph import operations
from bayesgraph.exceptions import (
    ConstructionError,
    DomainError,
    ShapeMismatchError,
    ValueNotSetError,
)
from bayesgraph.model.components import parameters
from bayesgraph.model.components.abstract_model_component import VertexKind
from bayesgraph.model.components.constants import ConstantVertex
from bayesgraph.rng import RandomSource


class TestConstruction:
    def test_ids_increase(self):
        first = parameters.Gaussian(mu=0.0, sigma=1.0)
        second = parameters.Gaussian(mu=0.0, sigma=1.0)
        assert second.id > first.id

    def test_shape_broadcasts_parents(self):
        assert parameters.Gaussian(mu=np.zeros(3), sigma=1.0).shape == (3,)
        assert parameters.Gaussian(mu=0.0, sigma=1.0, shape=(2, 3)).shape == (2, 3)
        assert parameters.Gaussian(mu=np.zeros(3), sigma=1.0, shape=(2, 3)).shape == (
            2,
            3,
        )

    def test_shape_conflict(self):
        with pytest.raises(ShapeMismatchError):
            parameters.Gaussian(mu=np.zeros(3), sigma=1.0, shape=(4,))

    def test_constant_parameters_validated_eagerly(self):
        with pytest.raises(ConstructionError):
            parameters.Gaussian(mu=0.0, sigma=-1.0)

    def test_vertex_parameters_validated_on_use(self):
        sigma = parameters.Gaussian(mu=-5.0, sigma=0.1)
        x = parameters.Gaussian(mu=0.0, sigma=sigma)
        sigma.set_value(-1.0)
        x.set_value(0.0)
        with pytest.raises(ConstructionError):
            x.log_prob()

    def test_raw_values_become_constants(self):
        x = parameters.Gaussian(mu=0.0, sigma=1.0)
        assert isinstance(x.named_parents["mu"], ConstantVertex)
        assert x.named_parents["mu"].KIND is VertexKind.DETERMINISTIC

    def test_children_and_connected_graph(self):
        mu = parameters.Gaussian(mu=0.0, sigma=1.0)
        x = parameters.Gaussian(mu=mu, sigma=1.0)
        y = x * 2.0
        assert mu.children == [x]
        assert x in y.parents
        graph = mu.connected_graph
        assert x in graph and y in graph
        assert [vertex.id for vertex in graph] == sorted(vertex.id for vertex in graph)

    def test_categorical_shape_drops_category_axis(self):
        assert parameters.Categorical(p=np.full((4, 3), 1 / 3)).shape == (4,)

    def test_multinomial_shape(self):
        p = np.full((2, 2, 3), 1 / 3)
        assert parameters.Multinomial(n=np.array([[1, 2], [3, 4]]), p=p).shape == (2, 2, 3)
        with pytest.raises(ShapeMismatchError):
            parameters.Multinomial(n=2, p=np.array([0.5, 0.5]), shape=(3,))

    def test_dtypes(self):
        assert parameters.Gaussian(mu=0.0, sigma=1.0).dtype == np.float64
        assert parameters.Bernoulli(p=0.5).dtype == np.bool_
        assert parameters.Binomial(p=0.5, n=3).dtype == np.int64
        assert parameters.Gaussian(mu=0.0, sigma=1.0).differentiable
        assert not parameters.Binomial(p=0.5, n=3).differentiable


class TestValues:
    def test_unset_latent_value(self):
        x = parameters.Gaussian(mu=0.0, sigma=1.0)
        assert not x.has_value()
        with pytest.raises(ValueNotSetError):
            x.get_value()
        with pytest.raises(ValueNotSetError):
            (x + 1.0).get_value()

    def test_deterministic_values_are_derived(self):
        a = parameters.Gaussian(mu=0.0, sigma=1.0)
        a.set_value(2.0)
        b = a * 3.0
        assert not b.has_value()
        assert b.get_value() == 6.0
        assert b.has_value()

    def test_calculate_is_idempotent(self):
        a = ConstantVertex(np.array([1.0, 2.0]))
        b = parameters.Gaussian(mu=0.0, sigma=1.0, shape=(2,))
        b.set_value([0.5, -0.5])
        c = a + b
        first = c.calculate()
        version = c.version
        second = c.calculate()
        np.testing.assert_array_equal(first, second)
        assert c.version == version + 1

    def test_set_value_checks_shape(self):
        x = parameters.Gaussian(mu=0.0, sigma=1.0, shape=(3,))
        with pytest.raises(ShapeMismatchError):
            x.set_value([1.0, 2.0])
        x.set_value(1.0)
        np.testing.assert_array_equal(x.get_value(), [1.0, 1.0, 1.0])

    def test_set_value_copies(self):
        x = parameters.Gaussian(mu=0.0, sigma=1.0, shape=(3,))
        value = np.zeros(3)
        x.set_value(value)
        value[0] = 5.0
        assert x.get_value()[0] == 0.0

    def test_set_and_cascade(self):
        a = parameters.Gaussian(mu=0.0, sigma=1.0)
        a.set_value(1.0)
        b = a + 1.0
        c = b * 2.0
        assert c.get_value() == 4.0
        a.set_and_cascade(5.0)
        assert b.get_value() == 6.0
        assert c.get_value() == 12.0

    def test_sample_does_not_modify_state(self):
        x = parameters.Gaussian(mu=0.0, sigma=1.0, shape=(4,))
        y = x * 2.0
        draw = y.sample(RandomSource(0))
        assert draw.shape == (4,)
        assert not x.has_value()
        assert not y.has_value()

    def test_sample_draws_shared_ancestors_once(self):
        x = parameters.Gaussian(mu=0.0, sigma=1.0, shape=(5,))
        np.testing.assert_array_equal((x - x).sample(RandomSource(1)), np.zeros(5))

    def test_lazy_eval(self):
        x = parameters.Gaussian(mu=0.0, sigma=1.0)
        y = x + 1.0
        value = y.lazy_eval(RandomSource(2))
        assert x.has_value()
        assert value == x.get_value() + 1.0

    def test_discrete_values_must_be_integers(self):
        x = parameters.Binomial(p=0.5, n=3)
        with pytest.raises(DomainError):
            x.observe(1.5)
        x.observe(2)
        assert x.get_value() == 2

    def test_observe(self):
        x = parameters.Gaussian(mu=0.0, sigma=1.0, shape=(2,))
        with pytest.raises(ShapeMismatchError):
            x.observe([1.0, 2.0, 3.0])
        x.observe([1.0, 2.0])
        assert x.is_observed
        x.unobserve()
        assert not x.is_observed
        np.testing.assert_array_equal(x.get_value(), [1.0, 2.0])

    def test_log_prob_of_vertex(self):
        x = parameters.Gaussian(mu=1.0, sigma=2.0, shape=(2,))
        x.set_value([1.0, 3.0])
        expected = 2 * (-np.log(2.0) - 0.5 * np.log(2 * np.pi)) - 0.5
        assert x.log_prob() == pytest.approx(expected)
        assert x.log_prob([1.0, 1.0]) == pytest.approx(expected + 0.5)


class TestOperators:
    def setup_method(self):
        self.a = ConstantVertex(np.array([1.0, 2.0]))
        self.b = ConstantVertex(np.array([3.0, 4.0]))

    def test_arithmetic(self):
        a, b = self.a, self.b
        np.testing.assert_allclose((a + b).get_value(), [4.0, 6.0])
        np.testing.assert_allclose((a - b).get_value(), [-2.0, -2.0])
        np.testing.assert_allclose((a * b).get_value(), [3.0, 8.0])
        np.testing.assert_allclose((a / b).get_value(), [1 / 3, 0.5])
        np.testing.assert_allclose((a**2).get_value(), [1.0, 4.0])
        np.testing.assert_allclose((-a).get_value(), [-1.0, -2.0])

    def test_reflected_arithmetic(self):
        a = self.a
        np.testing.assert_allclose((2.0 - a).get_value(), [1.0, 0.0])
        np.testing.assert_allclose((1.0 / a).get_value(), [1.0, 0.5])
        np.testing.assert_allclose((np.float64(3.0) * a).get_value(), [3.0, 6.0])
        np.testing.assert_allclose((2.0**a).get_value(), [2.0, 4.0])

    def test_dtype_promotion(self):
        total = ConstantVertex(2) + ConstantVertex(3)
        assert total.dtype == np.int64
        assert total.get_value() == 5
        assert (ConstantVertex(2) / ConstantVertex(4)).dtype == np.float64

    def test_boolean_operators(self):
        t = ConstantVertex(np.array([True, False]))
        np.testing.assert_array_equal((t & True).get_value(), [True, False])
        np.testing.assert_array_equal((t | False).get_value(), [True, False])
        np.testing.assert_array_equal((~t).get_value(), [False, True])
        np.testing.assert_array_equal(
            operations.logical_and(t, np.array([True, True])).get_value(), [True, False]
        )

    def test_unary_operations(self):
        a = self.a
        np.testing.assert_allclose(operations.exp(a).get_value(), np.exp([1.0, 2.0]))
        np.testing.assert_allclose(operations.log(a).get_value(), np.log([1.0, 2.0]))
        np.testing.assert_allclose(operations.abs_(-a).get_value(), [1.0, 2.0])
        assert operations.cast_to_float(ConstantVertex(True)).get_value() == 1.0

    def test_operations_on_raw_values(self):
        np.testing.assert_allclose(operations.exp(np.array([0.0])), [1.0])
        np.testing.assert_allclose(operations.sum_(np.ones((2, 3)), axes=0), [2.0, 2.0, 2.0])
        np.testing.assert_allclose(
            operations.concat([np.ones(2), np.zeros(1)], axis=0), [1.0, 1.0, 0.0]
        )

    def test_sum(self):
        x = ConstantVertex(np.arange(6.0).reshape(2, 3))
        assert operations.sum_(x).shape == ()
        assert operations.sum_(x).get_value() == 15.0
        np.testing.assert_allclose(operations.sum_(x, axes=0).get_value(), [3.0, 5.0, 7.0])
        np.testing.assert_allclose(operations.sum_(x, axes=-1).get_value(), [3.0, 12.0])
        with pytest.raises(ShapeMismatchError):
            operations.sum_(x, axes=2)

    def test_reshape(self):
        x = ConstantVertex(np.arange(6.0))
        assert operations.reshape(x, (2, 3)).shape == (2, 3)
        with pytest.raises(ShapeMismatchError):
            operations.reshape(x, (4,))

    def test_concat(self):
        x = ConstantVertex(np.ones((2, 3)))
        y = ConstantVertex(np.zeros((2, 1)))
        joined = operations.concat([x, y], axis=1)
        assert joined.shape == (2, 4)
        np.testing.assert_array_equal(joined.get_value()[:, 3], [0.0, 0.0])
        with pytest.raises(ShapeMismatchError):
            operations.concat([x, y], axis=0)

    def test_where(self):
        chosen = operations.where(ConstantVertex(np.array([True, False])), self.a, self.b)
        np.testing.assert_array_equal(chosen.get_value(), [1.0, 4.0])

    def test_indexing(self):
        x = ConstantVertex(np.arange(6.0).reshape(2, 3))
        np.testing.assert_array_equal(x[1].get_value(), [3.0, 4.0, 5.0])
        np.testing.assert_array_equal(x[..., 0].get_value(), [0.0, 3.0])
        assert x[:, [0, 2]].shape == (2, 2)
        assert x[1, 2].shape == ()
        with pytest.raises(ShapeMismatchError):
            x[5]
