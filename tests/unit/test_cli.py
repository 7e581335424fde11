"""End-to-end tests for the allknn command."""

import logging

import numpy as np
import pytest

from allknn import all_knn
from allknn.cli import build_parser, main


def _write_points(path, points):
    np.savetxt(path, points, delimiter=",", fmt="%.17g")


@pytest.fixture
def reference_file(tmp_path):
    rng = np.random.default_rng(42)
    points = rng.uniform(-1.0, 1.0, size=(40, 3))
    path = tmp_path / "reference.csv"
    _write_points(path, points)
    return path, points


@pytest.mark.parametrize("flags", [[], ["--single-mode"], ["--naive"]])
def test_cli_writes_neighbors_and_distances(tmp_path, reference_file, flags):
    path, points = reference_file
    distances_path = tmp_path / "distances.csv"
    neighbors_path = tmp_path / "neighbors.csv"

    status = main(
        ["-r", str(path), "-d", str(distances_path), "-n", str(neighbors_path), "-k", "3", "-l", "4"]
        + flags
    )

    assert status == 0
    expected_neighbors, expected_distances = all_knn(points, k=3, leaf_size=4)
    neighbors = np.loadtxt(neighbors_path, delimiter=",", dtype=np.int64, ndmin=2)
    distances = np.loadtxt(distances_path, delimiter=",", ndmin=2)
    assert np.array_equal(neighbors, np.asarray(expected_neighbors))
    assert np.allclose(distances, np.asarray(expected_distances), rtol=0.0, atol=1e-12)


def test_cli_with_query_file(tmp_path, reference_file):
    path, points = reference_file
    queries = np.array([[0.0, 0.0, 0.0], [0.9, -0.9, 0.5]])
    query_path = tmp_path / "query.txt"
    np.savetxt(query_path, queries)
    distances_path = tmp_path / "distances.txt"
    neighbors_path = tmp_path / "neighbors.txt"

    status = main(
        [
            "-r", str(path),
            "-q", str(query_path),
            "-d", str(distances_path),
            "-n", str(neighbors_path),
            "-k", "5",
        ]
    )

    assert status == 0
    neighbors = np.loadtxt(neighbors_path, dtype=np.int64, ndmin=2)
    expected_neighbors, _ = all_knn(points, queries, k=5)
    assert neighbors.shape == (2, 5)
    assert np.array_equal(neighbors, np.asarray(expected_neighbors))


def test_cli_include_self(tmp_path, reference_file):
    path, _ = reference_file
    neighbors_path = tmp_path / "neighbors.csv"

    status = main(
        ["-r", str(path), "-d", str(tmp_path / "d.csv"), "-n", str(neighbors_path), "-k", "2", "--include-self"]
    )

    assert status == 0
    neighbors = np.loadtxt(neighbors_path, delimiter=",", dtype=np.int64, ndmin=2)
    assert np.array_equal(neighbors[:, 0], np.arange(40))


def test_cli_rejects_bad_k_without_writing(tmp_path, reference_file, caplog):
    path, _ = reference_file
    distances_path = tmp_path / "distances.csv"
    neighbors_path = tmp_path / "neighbors.csv"

    with caplog.at_level(logging.ERROR):
        status = main(["-r", str(path), "-d", str(distances_path), "-n", str(neighbors_path), "-k", "40"])

    assert status == 1
    assert "Invalid k: 40" in caplog.text
    assert not distances_path.exists()
    assert not neighbors_path.exists()


def test_cli_reports_missing_reference_file(tmp_path):
    status = main(
        ["-r", str(tmp_path / "missing.csv"), "-d", str(tmp_path / "d.csv"), "-n", str(tmp_path / "n.csv"), "-k", "1"]
    )

    assert status == 1


def test_parser_requires_k_and_output_files():
    parser = build_parser()

    with pytest.raises(SystemExit):
        parser.parse_args(["-r", "points.csv"])
    args = parser.parse_args(["-r", "p.csv", "-d", "d.csv", "-n", "n.csv", "-k", "2", "--naive", "-s"])
    assert args.naive and args.single_mode
    assert args.leaf_size == 20


def test_cli_unwritable_distances_path_exits_with_error(tmp_path, reference_file, caplog):
    path, _ = reference_file
    neighbors_path = tmp_path / "neighbors.csv"

    with caplog.at_level(logging.ERROR):
        status = main(
            ["-r", str(path), "-d", str(tmp_path / "no" / "d.csv"), "-n", str(neighbors_path), "-k", "2"]
        )

    assert status == 1
    assert "Could not write results" in caplog.text
    assert not neighbors_path.exists()


def test_cli_failed_neighbors_write_removes_distances_file(tmp_path, reference_file):
    path, _ = reference_file
    distances_path = tmp_path / "distances.csv"

    status = main(
        ["-r", str(path), "-d", str(distances_path), "-n", str(tmp_path / "no" / "n.csv"), "-k", "2"]
    )

    assert status == 1
    assert not distances_path.exists()
