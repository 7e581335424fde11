"""Tests for midpoint space-partitioning tree construction."""

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from allknn import InvalidArgumentError, SpaceTree, build_tree


def _sample_points(n: int = 64, dim: int = 3, seed: int = 123) -> jnp.ndarray:
    key = jax.random.PRNGKey(seed)
    return jax.random.uniform(key, (n, dim), minval=-1.0, maxval=1.0)


def _host(tree: SpaceTree) -> dict:
    return {
        name: np.asarray(getattr(tree, name))
        for name in (
            "points",
            "old_from_new",
            "new_from_old",
            "node_begin",
            "node_count",
            "left_child",
            "right_child",
            "parent",
            "split_dim",
            "split_value",
            "bbox_min",
            "bbox_max",
        )
    }


def test_permutation_round_trip():
    tree = build_tree(_sample_points(n=101), leaf_size=5)
    t = _host(tree)
    n = tree.num_points

    assert np.array_equal(np.sort(t["old_from_new"]), np.arange(n))
    assert np.array_equal(np.sort(t["new_from_old"]), np.arange(n))
    assert np.array_equal(t["old_from_new"][t["new_from_old"]], np.arange(n))
    assert np.array_equal(t["new_from_old"][t["old_from_new"]], np.arange(n))


def test_points_are_not_reordered():
    points = _sample_points(n=40)
    tree = build_tree(points, leaf_size=4)

    assert jnp.array_equal(tree.points, points)
    assert jnp.array_equal(tree.points_sorted, points[tree.old_from_new])


def test_node_boxes_are_tight_and_nested():
    tree = build_tree(_sample_points(n=97, dim=4), leaf_size=3)
    t = _host(tree)
    sorted_points = t["points"][t["old_from_new"]]

    for node in range(tree.num_nodes):
        begin, count = t["node_begin"][node], t["node_count"][node]
        members = sorted_points[begin : begin + count]
        assert np.array_equal(t["bbox_min"][node], members.min(axis=0))
        assert np.array_equal(t["bbox_max"][node], members.max(axis=0))

        parent = t["parent"][node]
        if parent >= 0:
            assert np.all(t["bbox_min"][node] >= t["bbox_min"][parent])
            assert np.all(t["bbox_max"][node] <= t["bbox_max"][parent])


def test_children_split_parent_range_at_midpoint_of_widest_dimension():
    tree = build_tree(_sample_points(n=80, dim=3), leaf_size=6)
    t = _host(tree)
    sorted_points = t["points"][t["old_from_new"]]

    for node in range(tree.num_nodes):
        left, right = t["left_child"][node], t["right_child"][node]
        if left < 0:
            assert right < 0
            assert t["split_dim"][node] == -1
            continue
        begin, count = t["node_begin"][node], t["node_count"][node]
        assert t["node_begin"][left] == begin
        assert t["node_begin"][right] == begin + t["node_count"][left]
        assert t["node_count"][left] + t["node_count"][right] == count
        assert t["parent"][left] == node and t["parent"][right] == node

        spread = t["bbox_max"][node] - t["bbox_min"][node]
        dim = t["split_dim"][node]
        assert dim == int(np.argmax(spread))
        midpoint = 0.5 * t["bbox_min"][node][dim] + 0.5 * t["bbox_max"][node][dim]
        assert np.isclose(t["split_value"][node], midpoint)

        lhs = sorted_points[begin : begin + t["node_count"][left], dim]
        rhs = sorted_points[t["node_begin"][right] : begin + count, dim]
        assert np.all(lhs < t["split_value"][node])
        assert np.all(rhs >= t["split_value"][node])


def test_leaves_partition_points_and_respect_leaf_size():
    for leaf_size in (1, 5, 20):
        tree = build_tree(_sample_points(n=150, dim=2), leaf_size=leaf_size)
        t = _host(tree)
        leaves = np.asarray(tree.leaf_nodes)

        assert tree.num_leaves == leaves.shape[0]
        assert np.all(t["node_count"][leaves] <= leaf_size)
        assert np.all(t["node_count"][leaves] >= 1)
        begins = t["node_begin"][leaves]
        ends = begins + t["node_count"][leaves]
        assert begins[0] == 0
        assert np.array_equal(begins[1:], ends[:-1])
        assert ends[-1] == tree.num_points


def test_leaf_size_at_least_point_count_gives_single_leaf():
    tree = build_tree(_sample_points(n=30), leaf_size=30)

    assert tree.num_nodes == 1
    assert bool(tree.is_leaf[0])
    assert int(tree.node_count[0]) == 30


def test_identical_points_force_a_leaf():
    points = jnp.full((50, 3), 0.25)
    tree = build_tree(points, leaf_size=2)

    assert tree.num_nodes == 1
    assert int(tree.node_count[0]) == 50
    assert np.array_equal(np.sort(np.asarray(tree.old_from_new)), np.arange(50))


def test_duplicate_clusters_split_only_between_clusters():
    points = jnp.concatenate([jnp.zeros((10, 2)), jnp.ones((7, 2))], axis=0)
    tree = build_tree(points, leaf_size=1)

    assert tree.num_nodes == 3
    counts = sorted(int(c) for c in np.asarray(tree.node_count)[np.asarray(tree.is_leaf)])
    assert counts == [7, 10]


def test_deep_tree_builds_without_recursion():
    # Each midpoint cut peels off only the largest point.
    points = np.float_power(3.0, np.arange(1100) - 550.0)[:, None]
    tree = build_tree(points, leaf_size=1)

    assert tree.num_leaves == 1100
    assert tree.num_nodes == 2 * 1100 - 1
    parent = np.asarray(tree.parent)
    depth, node = 0, int(np.asarray(tree.leaf_nodes)[0])
    while parent[node] >= 0:
        depth, node = depth + 1, int(parent[node])
    assert depth == 1099


def test_build_tree_rejects_invalid_arguments():
    points = _sample_points(n=10)

    with pytest.raises(InvalidArgumentError):
        build_tree(points, leaf_size=0)
    with pytest.raises(InvalidArgumentError):
        build_tree(jnp.zeros((0, 3)))
    with pytest.raises(InvalidArgumentError):
        build_tree(jnp.zeros((5,)))
    with pytest.raises(InvalidArgumentError):
        build_tree(points.at[3, 1].set(jnp.nan))


def test_space_tree_is_a_pytree():
    tree = build_tree(_sample_points(n=33), leaf_size=4)
    leaves, treedef = jax.tree_util.tree_flatten(tree)
    rebuilt = jax.tree_util.tree_unflatten(treedef, leaves)

    assert len(leaves) == 12
    assert isinstance(rebuilt, SpaceTree)
    assert rebuilt.leaf_size == 4
    assert jnp.array_equal(rebuilt.old_from_new, tree.old_from_new)


def test_node_bound_accessor_matches_bbox_arrays():
    tree = build_tree(_sample_points(n=33), leaf_size=4)
    bound = tree.bound(0)

    assert jnp.array_equal(bound.lo, jnp.min(tree.points, axis=0))
    assert jnp.array_equal(bound.hi, jnp.max(tree.points, axis=0))
