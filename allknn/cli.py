"""Command-line driver computing all k nearest neighbors of a point file."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

from .dataio import load_points, save_matrix
from .errors import DataUnavailableError, InvalidArgumentError
from .policies import resolve_search_mode
from .search import SearchConfig, search
from .tree import DEFAULT_LEAF_SIZE

logger = logging.getLogger(__name__)

DESCRIPTION = (
    "Calculate the k nearest neighbors of a set of points. Give a reference "
    "file, and optionally a separate query file; without a query file the "
    "reference set is also the query set and no point is reported as its "
    "own neighbor. Line j of the neighbors file lists the reference indices "
    "of the nearest neighbors of query point j, nearest first; the "
    "distances file holds the matching distances."
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="allknn", description=DESCRIPTION)
    parser.add_argument("-r", "--reference-file", required=True, help="File containing the reference dataset.")
    parser.add_argument("-q", "--query-file", default=None, help="File containing query points (optional).")
    parser.add_argument("-d", "--distances-file", required=True, help="File to output distances into.")
    parser.add_argument("-n", "--neighbors-file", required=True, help="File to output neighbors into.")
    parser.add_argument("-k", "--k", type=int, required=True, help="Number of nearest neighbors to find.")
    parser.add_argument("-l", "--leaf-size", type=int, default=DEFAULT_LEAF_SIZE, help="Leaf size for tree building.")
    parser.add_argument("--naive", action="store_true", help="Use O(n^2) naive search.")
    parser.add_argument("-s", "--single-mode", action="store_true", help="Use single-tree instead of dual-tree search.")
    parser.add_argument(
        "--include-self",
        action="store_true",
        help="Without a query file, allow each point to be its own neighbor.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress and timing information.")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="[%(levelname)s] %(name)s: %(message)s",
    )

    try:
        reference = load_points(args.reference_file)
        query = load_points(args.query_file) if args.query_file else None
        config = SearchConfig(
            k=args.k,
            leaf_size=args.leaf_size,
            mode=resolve_search_mode(naive=args.naive, single_mode=args.single_mode),
            exclude_self=False if args.include_self else None,
        )
        result = search(reference, query, config)
    except (DataUnavailableError, InvalidArgumentError) as exc:
        logger.error("%s", exc)
        return 1

    stats = result.statistics
    logger.info(
        "tree_building: %.6f s, computing_neighbors: %.6f s, distance evaluations: %d",
        stats.tree_build_seconds,
        stats.search_seconds,
        stats.distance_evaluations,
    )
    written: list[Path] = []
    try:
        for path, matrix in (
            (Path(args.distances_file), result.distances),
            (Path(args.neighbors_file), result.neighbors),
        ):
            save_matrix(path, matrix)
            written.append(path)
    except OSError as exc:
        logger.error("Could not write results: %s", exc)
        # Leave no partial output behind.
        for path in written:
            path.unlink(missing_ok=True)
        return 1
    return 0


__all__ = ["build_parser", "main"]
