"""
Tests for residual formulas, the analytic Jacobian and degeneracy handling.
"""

import unittest

import numpy as np

from sketchbind.core.settings import DegeneratePolicy, DistanceMode
from sketchbind.kernel import (
    ConstraintStore,
    DegenerateConstraint,
    ResidualModel,
    VariableIndex,
    VertexStore,
)


def _finite_difference_jacobian(model, p, h=1e-6):
    J = np.zeros((model.size, len(p)))
    for j in range(len(p)):
        step = np.zeros(len(p))
        step[j] = h
        J[:, j] = (model.residuals(p + step) - model.residuals(p - step)) / (2 * h)
    return J


class TestResidualFormulas(unittest.TestCase):

    def setUp(self):
        self.vertices = VertexStore()
        self.constraints = ConstraintStore(self.vertices)
        self.a = self.vertices.add(0, 0)
        self.b = self.vertices.add(2, 0)
        self.c = self.vertices.add(0, 1)
        self.d = self.vertices.add(2, 5)

    def _residuals(self, mode=DistanceMode.SIGNED):
        index = VariableIndex.build(self.constraints, self.vertices)
        model = ResidualModel(list(self.constraints), index, distance_mode=mode)
        return model.residuals(index.x0)

    def test_fixed(self):
        self.constraints.constrain_fixed(self.d, target=(1, 1))
        np.testing.assert_allclose(self._residuals(), [1.0, 4.0])

    def test_fixed_x_and_y(self):
        self.constraints.constrain_fixed_x(self.d, 5)
        self.constraints.constrain_fixed_y(self.d, 5)
        np.testing.assert_allclose(self._residuals(), [-3.0, 0.0])

    def test_vertical_and_horizontal(self):
        self.constraints.constrain_vertical(self.a, self.d)
        self.constraints.constrain_horizontal(self.a, self.d)
        np.testing.assert_allclose(self._residuals(), [-2.0, -5.0])

    def test_parallel_cross_product(self):
        self.constraints.constrain_parallel(self.a, self.b, self.c, self.d)
        # (d.x - c.x)(b.y - a.y) - (d.y - c.y)(b.x - a.x) = 2*0 - 4*2
        np.testing.assert_allclose(self._residuals(), [-8.0])

    def test_parallel_is_sign_insensitive(self):
        self.constraints.constrain_parallel(self.a, self.b, self.d, self.c)
        self.vertices.set_position(self.c, 5, 1)
        self.vertices.set_position(self.d, 1, 1)
        np.testing.assert_allclose(self._residuals(), [0.0])

    def test_same_pos(self):
        self.constraints.constrain_same_pos(self.b, self.d)
        np.testing.assert_allclose(self._residuals(), [0.0, -5.0])

    def test_distance_signed(self):
        self.constraints.constrain_distance(self.a, self.b, sq_distance=9.0)
        np.testing.assert_allclose(self._residuals(), [-5.0])

    def test_distance_absolute_legacy_form(self):
        self.constraints.constrain_distance(self.a, self.b, sq_distance=9.0)
        np.testing.assert_allclose(self._residuals(DistanceMode.ABSOLUTE), [5.0])

    def test_residual_count_and_order(self):
        self.constraints.constrain_fixed(self.a)
        self.constraints.constrain_vertical(self.a, self.b)
        self.constraints.constrain_same_pos(self.c, self.d)
        self.constraints.constrain_distance(self.a, self.d)
        index = VariableIndex.build(self.constraints, self.vertices)
        model = ResidualModel(list(self.constraints), index)
        self.assertEqual(model.size, 2 + 1 + 2 + 1)
        r = model.residuals(index.x0)
        np.testing.assert_allclose(r, [0.0, 0.0, -2.0, -2.0, -4.0, 0.0])

    def test_evaluation_is_repeatable(self):
        self.constraints.constrain_parallel(self.a, self.b, self.c, self.d)
        self.constraints.constrain_distance(self.a, self.d, sq_distance=1.0)
        index = VariableIndex.build(self.constraints, self.vertices)
        model = ResidualModel(list(self.constraints), index)
        p = index.x0
        np.testing.assert_array_equal(model.residuals(p), model.residuals(p.copy()))

    def test_degrees_of_freedom(self):
        self.constraints.constrain_vertical(self.a, self.b)
        index = VariableIndex.build(self.constraints, self.vertices)
        self.assertEqual(ResidualModel(list(self.constraints), index).degrees_of_freedom, 3)
        self.constraints.constrain_fixed(self.a)
        self.constraints.constrain_fixed(self.b)
        index = VariableIndex.build(self.constraints, self.vertices)
        self.assertEqual(ResidualModel(list(self.constraints), index).degrees_of_freedom, -1)

    def test_constraint_errors(self):
        c1 = self.constraints.constrain_fixed(self.d, target=(1, 1))
        c2 = self.constraints.constrain_vertical(self.a, self.c)
        index = VariableIndex.build(self.constraints, self.vertices)
        model = ResidualModel(list(self.constraints), index)
        self.assertEqual(model.constraint_errors(index.x0), [(c1.cid, 17.0), (c2.cid, 0.0)])
        self.assertEqual(model.worst_constraints(index.x0), [(c1.cid, 17.0)])


class TestJacobian(unittest.TestCase):

    def setUp(self):
        rng = np.random.RandomState(7)
        self.vertices = VertexStore()
        self.constraints = ConstraintStore(self.vertices)
        self.ids = [self.vertices.add(*rng.uniform(-5, 5, size=2)) for _ in range(5)]

    def _check(self, mode=DistanceMode.SIGNED):
        index = VariableIndex.build(self.constraints, self.vertices)
        model = ResidualModel(list(self.constraints), index, distance_mode=mode)
        p = index.x0
        np.testing.assert_allclose(
            model.jacobian(p), _finite_difference_jacobian(model, p), atol=1e-5,
        )

    def test_all_types_match_finite_differences(self):
        a, b, c, d, e = self.ids
        self.constraints.constrain_fixed(a, target=(1, 2))
        self.constraints.constrain_fixed_x(b, 0.5)
        self.constraints.constrain_fixed_y(c, -0.5)
        self.constraints.constrain_vertical(a, b)
        self.constraints.constrain_horizontal(c, d)
        self.constraints.constrain_parallel(a, b, c, d)
        self.constraints.constrain_same_pos(d, e)
        self.constraints.constrain_distance(a, e, sq_distance=4.0)
        self._check()

    def test_absolute_distance_away_from_kink(self):
        a, b = self.ids[:2]
        self.constraints.constrain_distance(a, b, sq_distance=0.01)
        self._check(DistanceMode.ABSOLUTE)

    def test_parallel_with_shared_vertex(self):
        a, b, c = self.ids[:3]
        self.constraints.constrain_parallel(a, b, b, c)
        self._check()

    def test_shape(self):
        a, b = self.ids[:2]
        self.constraints.constrain_same_pos(a, b)
        self.constraints.constrain_fixed_x(a, 0)
        index = VariableIndex.build(self.constraints, self.vertices)
        model = ResidualModel(list(self.constraints), index)
        self.assertEqual(model.jacobian(index.x0).shape, (3, 4))

    def test_coincident_distance_operands_are_separated(self):
        """The DISTANCE row is all zeros on a shared point until split."""
        a, b, c = self.ids[:3]
        self.vertices.set_position(b, *self.vertices.position(a))
        self.constraints.constrain_distance(a, b, sq_distance=25.0)
        self.constraints.constrain_vertical(a, c)
        index = VariableIndex.build(self.constraints, self.vertices)
        model = ResidualModel(list(self.constraints), index)
        p = index.x0
        self.assertFalse(np.any(model.jacobian(p)[0]))

        q = model.separate_coincident(p)
        self.assertFalse(np.shares_memory(p, q))
        self.assertGreater(q[index.slot(b)], p[index.slot(b)])
        self.assertEqual(q[index.slot(b) + 1], p[index.slot(b) + 1])
        self.assertTrue(np.any(model.jacobian(q)[0]))
        # Only the coincident vertex moves
        np.testing.assert_array_equal(np.delete(q, index.slot(b)), np.delete(p, index.slot(b)))

    def test_separated_vertices_are_left_alone(self):
        a, b = self.ids[:2]
        self.constraints.constrain_distance(a, b, sq_distance=25.0)
        index = VariableIndex.build(self.constraints, self.vertices)
        model = ResidualModel(list(self.constraints), index)
        np.testing.assert_array_equal(model.separate_coincident(index.x0), index.x0)


class TestDegenerateConstraints(unittest.TestCase):

    def setUp(self):
        self.vertices = VertexStore()
        self.constraints = ConstraintStore(self.vertices)
        self.a = self.vertices.add(0, 0)
        self.b = self.vertices.add(1, 1)

    def _model(self, policy=DegeneratePolicy.RAISE):
        index = VariableIndex.build(self.constraints, self.vertices)
        return ResidualModel(list(self.constraints), index, degenerate_policy=policy), index

    def test_self_referencing_pair_raises(self):
        c = self.constraints.constrain_vertical(self.a, self.a)
        with self.assertRaises(DegenerateConstraint) as ctx:
            self._model()
        self.assertEqual(ctx.exception.constraint_id, c.cid)

    def test_collapsed_parallel_segment_raises(self):
        self.constraints.constrain_parallel(self.a, self.b, self.b, self.b)
        with self.assertRaises(DegenerateConstraint):
            self._model()

    def test_skip_policy_drops_constraint(self):
        bad = self.constraints.constrain_distance(self.b, self.b, sq_distance=4.0)
        self.constraints.constrain_fixed(self.a)
        with self.assertLogs("sketchbind", level="WARNING"):
            model, index = self._model(DegeneratePolicy.SKIP)
        self.assertEqual(model.skipped, [bad.cid])
        self.assertEqual(model.size, 2)

    def test_non_finite_residual_raises(self):
        c = self.constraints.constrain_fixed(self.a, target=(0, 0))
        self.vertices.set_position(self.a, float("nan"), 0)
        model, index = self._model()
        with self.assertRaises(DegenerateConstraint) as ctx:
            model.residuals(index.x0)
        self.assertEqual(ctx.exception.constraint_id, c.cid)


if __name__ == "__main__":
    unittest.main()
