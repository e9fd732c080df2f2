"""
A static two-dimensional tree for nearest-place lookups.

The tree is built once by median partitioning and never changes afterwards,
so any number of threads can query it without locking. Distances are squared
Euclidean over the raw (latitude, longitude) values; no geodesic correction
is applied.
"""
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .dataset import Coordinate, Dataset, Record

DIMENSIONS = 2


class EmptyDatasetError(ValueError):
    """Raised when an index is built over a dataset with no records."""


@dataclass(frozen=True)
class Match:
    """The result of a nearest-neighbor query."""

    record: Record
    point: Coordinate
    index: int
    distance: float  # squared


@dataclass(frozen=True)
class _Node:
    point: Coordinate
    record: Record
    index: int
    axis: int
    left: Optional['_Node'] = None
    right: Optional['_Node'] = None


def squared_euclidean(a: Sequence[float], b: Sequence[float]) -> float:
    dlat = a[0] - b[0]
    dlon = a[1] - b[1]
    return dlat * dlat + dlon * dlon


class SpatialIndex:
    """
    An immutable 2-d tree over the entries of a Dataset.

    Use `build` to construct one. Each node references a dataset entry and
    splits on latitude at even depths and longitude at odd depths. Keys on the
    split axis are ordered by (value, dataset index), so every node in the
    left subtree compares strictly below the node and every node in the right
    subtree strictly above it.
    """

    def __init__(self, root: Optional[_Node], size: int, depth: int):
        self._root = root
        self._size = size
        self._depth = depth

    def __len__(self):
        return self._size

    @property
    def depth(self) -> int:
        """Number of nodes on the longest root-to-leaf path."""
        return self._depth

    def nearest(self, point: Sequence[float]) -> Optional[Record]:
        """
        Finds the record closest to `point`.

        Args:
            point: A (latitude, longitude) pair. No range validation is done.

        Returns:
            The Record minimizing squared Euclidean distance to `point`, or
            None if the index is empty. Among records at the same distance the
            one that came first in the dataset wins.
        """
        match = self.nearest_match(point)
        if match is None:
            return None
        return match.record

    def nearest_match(self, point: Sequence[float]) -> Optional[Match]:
        """Like `nearest`, but also reports the squared distance and dataset index."""
        if self._root is None:
            return None
        query = (float(point[0]), float(point[1]))
        distance, _, node = _search(self._root, query, None)
        return Match(record=node.record, point=node.point, index=node.index, distance=distance)


def _search(node: Optional[_Node], query: Coordinate, best):
    """
    Branch-and-bound descent below `node`.

    `best` is a (distance, index, node) triple or None. Candidates compare by
    (distance, index), which reproduces the first-minimum result of a linear
    scan. The far side is skipped only when the splitting line is strictly
    farther away than the best distance so far.
    """
    if node is None:
        return best

    distance = squared_euclidean(query, node.point)
    if best is None or (distance, node.index) < (best[0], best[1]):
        best = (distance, node.index, node)

    diff = query[node.axis] - node.point[node.axis]
    if diff < 0:
        near, far = node.left, node.right
    else:
        near, far = node.right, node.left

    best = _search(near, query, best)
    if diff * diff <= best[0]:
        best = _search(far, query, best)
    return best


def _build(points: Sequence[Coordinate], dataset: Dataset, by_axis: Tuple[List[int], List[int]], depth: int):
    """
    Builds the subtree over the dataset indices in `by_axis`.

    `by_axis[a]` holds the same set of indices ordered by (points[i][a], i).
    Returns (node, subtree depth).
    """
    axis = depth % DIMENSIONS
    ordered = by_axis[axis]
    if not ordered:
        return None, 0

    median = len(ordered) // 2
    pivot = ordered[median]
    pivot_key = (points[pivot][axis], pivot)

    # Stable partition of the other axis keeps both halves pre-sorted.
    other = by_axis[1 - axis]
    other_left = [i for i in other if (points[i][axis], i) < pivot_key]
    other_right = [i for i in other if (points[i][axis], i) > pivot_key]

    if axis == 0:
        left_lists = (ordered[:median], other_left)
        right_lists = (ordered[median + 1:], other_right)
    else:
        left_lists = (other_left, ordered[:median])
        right_lists = (other_right, ordered[median + 1:])

    left, left_depth = _build(points, dataset, left_lists, depth + 1)
    right, right_depth = _build(points, dataset, right_lists, depth + 1)

    point, record = dataset[pivot]
    node = _Node(point=point, record=record, index=pivot, axis=axis, left=left, right=right)
    return node, 1 + max(left_depth, right_depth)


def build(dataset: Dataset) -> SpatialIndex:
    """
    Builds a balanced SpatialIndex over `dataset`.

    Args:
        dataset: The records to index. Nodes reference the dataset entries,
            they are not copied.

    Returns:
        A SpatialIndex. Building twice over the same dataset yields the same
        tree shape.

    Raises:
        EmptyDatasetError: If the dataset has no records.
    """
    if len(dataset) == 0:
        raise EmptyDatasetError("Cannot build a spatial index over an empty dataset.")

    points = dataset.coordinates()
    indices = range(len(points))
    by_axis = (
        sorted(indices, key=lambda i: (points[i][0], i)),
        sorted(indices, key=lambda i: (points[i][1], i)),
    )
    root, depth = _build(points, dataset, by_axis, 0)
    return SpatialIndex(root, len(points), depth)
