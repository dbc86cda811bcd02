"""Tests for greedy canopy formation and the merge step."""

from __future__ import annotations

import numpy as np
import pytest
from pyspark.ml.linalg import Vectors

from spark_canopy.clustering.canopy import find_canopies, form_canopies, merge_canopies
from spark_canopy.clustering.distance import DimensionMismatchError, select_metric

EUCLIDEAN = select_metric("Euclidean")


def _random_points(seed: int, n: int = 200, dims: int = 3) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.normal(size=(n, dims))


class TestFormCanopies:
    def test_three_separated_pairs(self, six_points):
        centers = form_canopies(six_points, EUCLIDEAN, loose=3.0, tight=1.5)
        np.testing.assert_array_equal(centers, [[0.0, 0.0], [10.0, 10.0], [20.0, 0.0]])

    def test_centers_are_seed_copies_not_means(self):
        points = [[0.0], [0.4], [0.8]]
        centers = form_canopies(points, EUCLIDEAN, loose=1.0, tight=1.0)
        np.testing.assert_array_equal(centers, [[0.0]])

    def test_loose_member_never_seeds(self):
        # 2.0 is a loose member of the first canopy; 5.0 is outside it.
        canopies = find_canopies([[0.0], [2.0], [5.0]], EUCLIDEAN, loose=3.0, tight=1.0)
        assert [c.seed_index for c in canopies] == [0, 2]
        assert canopies[0].loose_members == [1]
        assert canopies[0].tight_members == []

    def test_tight_members_are_absorbed(self, six_points):
        canopies = find_canopies(six_points, EUCLIDEAN, loose=3.0, tight=1.5)
        assert [c.tight_members for c in canopies] == [[1], [3], [5]]
        assert all(c.size == 2 for c in canopies)

    def test_empty_input_short_circuits(self):
        assert form_canopies([], EUCLIDEAN, 1.0, 0.5).shape == (0, 0)
        assert form_canopies(np.empty((0, 4)), EUCLIDEAN, 1.0, 0.5).shape == (0, 4)

    def test_single_point(self):
        np.testing.assert_array_equal(form_canopies([[3.0, 4.0]], EUCLIDEAN, 1.0, 0.5), [[3.0, 4.0]])

    @pytest.mark.parametrize("seed", [0, 1, 2])
    def test_terminates_with_at_least_one_center(self, seed):
        points = _random_points(seed)
        centers = form_canopies(points, EUCLIDEAN, loose=1.0, tight=0.5)
        assert 1 <= centers.shape[0] <= points.shape[0]
        assert centers.shape[1] == points.shape[1]

    @pytest.mark.parametrize("seed", [3, 4])
    def test_every_row_is_accounted_for(self, seed):
        points = _random_points(seed)
        loose, tight = 1.2, 0.6
        canopies = find_canopies(points, EUCLIDEAN, loose=loose, tight=tight)

        seen = []
        for canopy in canopies:
            seen.append(canopy.seed_index)
            for index in canopy.tight_members:
                assert EUCLIDEAN.distance(points[index], canopy.center) < tight
            for index in canopy.loose_members:
                distance = EUCLIDEAN.distance(points[index], canopy.center)
                assert tight <= distance < loose
            seen.extend(canopy.tight_members)
            seen.extend(canopy.loose_members)

        assert sorted(seen) == list(range(points.shape[0]))

    def test_reruns_are_bit_identical(self):
        points = _random_points(5)
        first = form_canopies(points, EUCLIDEAN, loose=1.0, tight=0.4)
        second = form_canopies(points, EUCLIDEAN, loose=1.0, tight=0.4)
        assert first.tobytes() == second.tobytes()

    def test_row_order_changes_seeds(self, six_points):
        reordered = list(reversed(six_points))
        centers = form_canopies(reordered, EUCLIDEAN, loose=3.0, tight=1.5)
        np.testing.assert_array_equal(centers, [[20.0, 1.0], [10.0, 11.0], [0.0, 1.0]])

    def test_input_is_not_mutated(self):
        points = _random_points(6, n=20)
        snapshot = points.copy()
        form_canopies(points, EUCLIDEAN, loose=2.0, tight=1.0)
        np.testing.assert_array_equal(points, snapshot)

    def test_wider_thresholds_never_add_canopies_on_sorted_line(self):
        points = np.sort(np.random.default_rng(7).uniform(0, 100, size=300)).reshape(-1, 1)
        ladder = [(0.5, 0.1), (1.0, 0.5), (2.0, 1.0), (5.0, 2.5), (10.0, 5.0)]
        counts = [form_canopies(points, EUCLIDEAN, loose, tight).shape[0] for loose, tight in ladder]
        assert counts == sorted(counts, reverse=True)

    def test_wider_thresholds_can_add_canopies_in_two_dimensions(self):
        # The far seed swallows the bridging point that would have covered both wings.
        points = [[0.0, 0.0], [1.5, 0.0], [1.5, 1.0], [1.5, -1.0]]
        narrow = form_canopies(points, EUCLIDEAN, loose=1.05, tight=0.1)
        wide = form_canopies(points, EUCLIDEAN, loose=1.6, tight=0.2)
        assert narrow.shape[0] == 2
        assert wide.shape[0] == 3

    def test_sparse_rows_are_densified(self):
        rows = [Vectors.sparse(3, {0: 1.0}), Vectors.dense([1.0, 0.0, 0.1]), Vectors.sparse(3, {2: 5.0})]
        centers = form_canopies(rows, EUCLIDEAN, loose=1.0, tight=0.5)
        np.testing.assert_array_equal(centers, [[1.0, 0.0, 0.0], [0.0, 0.0, 5.0]])

    def test_ragged_rows_raise(self):
        with pytest.raises(DimensionMismatchError):
            form_canopies([[0.0, 1.0], [1.0]], EUCLIDEAN, 1.0, 0.5)

    @pytest.mark.parametrize("loose, tight", [(-1.0, 0.5), (1.0, float("nan")), (float("inf"), 0.5)])
    def test_invalid_thresholds_raise(self, loose, tight):
        with pytest.raises(ValueError, match="threshold"):
            form_canopies([[0.0]], EUCLIDEAN, loose, tight)

    @pytest.mark.parametrize("loose, tight", [(-1.0, 0.5), (1.0, float("nan"))])
    def test_invalid_thresholds_raise_on_empty_input(self, loose, tight):
        with pytest.raises(ValueError, match="threshold"):
            form_canopies(np.empty((0, 2)), EUCLIDEAN, loose, tight)
        with pytest.raises(ValueError, match="threshold"):
            merge_canopies(np.empty((0, 0)), np.empty((0, 0)), EUCLIDEAN, loose, tight)


class TestMergeCanopies:
    def test_self_merge_collapses_within_tight_threshold(self, six_points):
        centers = form_canopies(six_points, EUCLIDEAN, loose=3.0, tight=1.5)
        merged = merge_canopies(centers, centers, EUCLIDEAN, loose=25.0, tight=21.0)
        np.testing.assert_array_equal(merged, [[0.0, 0.0]])

    def test_left_rows_seed_first(self):
        left, right = [[0.0]], [[1.0]]
        np.testing.assert_array_equal(merge_canopies(left, right, EUCLIDEAN, 1.5, 1.5), [[0.0]])
        np.testing.assert_array_equal(merge_canopies(right, left, EUCLIDEAN, 1.5, 1.5), [[1.0]])

    def test_pairing_order_changes_the_result(self):
        a, b, c = [[0.0]], [[1.0]], [[2.0]]
        left_first = merge_canopies(merge_canopies(a, b, EUCLIDEAN, 1.5, 1.5), c, EUCLIDEAN, 1.5, 1.5)
        right_first = merge_canopies(a, merge_canopies(b, c, EUCLIDEAN, 1.5, 1.5), EUCLIDEAN, 1.5, 1.5)

        np.testing.assert_array_equal(left_first, [[0.0], [2.0]])
        np.testing.assert_array_equal(right_first, [[0.0]])

    def test_empty_side_contributes_nothing(self):
        right = np.array([[0.0, 0.0], [0.0, 0.5]])
        merged = merge_canopies(np.empty((0, 0)), right, EUCLIDEAN, 1.0, 1.0)
        np.testing.assert_array_equal(merged, [[0.0, 0.0]])
        assert merge_canopies(np.empty((0, 0)), np.empty((0, 0)), EUCLIDEAN, 1.0, 1.0).shape == (0, 0)

    def test_dimension_mismatch_raises(self):
        with pytest.raises(DimensionMismatchError):
            merge_canopies([[0.0]], [[0.0, 1.0]], EUCLIDEAN, 1.0, 0.5)
