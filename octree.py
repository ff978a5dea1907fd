import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from errors import OutOfBoundsError
from reconstructor import Mesh, PlanarReconstructor

logger = logging.getLogger(__name__)


def _as_point(point):
    point = np.array(point, dtype=float).reshape(-1)
    if point.shape != (3,) or not np.all(np.isfinite(point)):
        raise ValueError(f"expected a finite 3-D point, got {point!r}")
    return point


# ---------------------- Reconstruction Octree ----------------------
class ReconstructionOctree:
    """
    Node of an octree over the half-open cube [origin, origin + extent).

    A node with depth 0 is a leaf: it buffers every point routed to it and owns
    one reconstructor. A node with depth > 0 owns 8 child slots, one per octant,
    materialized the first time a point routes into them. Octant indices are
    4 * x_bit + 2 * y_bit + z_bit, where a bit is set when the coordinate lies
    in the upper half of the node on that axis.

    With strict_bounds the root rejects points outside its cube with
    OutOfBoundsError; otherwise they are routed to whichever leaf the octant
    comparisons select.
    """

    def __init__(self, origin, extent, depth, reconstructor_factory=PlanarReconstructor, strict_bounds=False):
        origin = np.array(origin, dtype=float).reshape(-1)
        if origin.shape != (3,) or not np.all(np.isfinite(origin)):
            raise ValueError(f"origin must be a finite 3-D point, got {origin!r}")
        if not np.isfinite(extent) or extent <= 0:
            raise ValueError(f"extent must be positive and finite, got {extent!r}")
        if int(depth) != depth or depth < 0:
            raise ValueError(f"depth must be a non-negative integer, got {depth!r}")

        self.origin = origin
        self.extent = float(extent)
        self.half_extent = self.extent / 2
        self.depth = int(depth)
        self.reconstructor_factory = reconstructor_factory
        self.strict_bounds = strict_bounds
        self.children = [None] * 8
        # guards child materialization on internal nodes and the buffer on leaves
        self._lock = threading.Lock()
        self._out_of_bounds_count = 0
        if self.depth == 0:
            self.points = []
            self.reconstructor = reconstructor_factory()

    def is_leaf(self):
        return self.depth == 0

    def bounds(self):
        return self.origin.copy(), self.origin + self.extent

    def contains(self, point):
        """
        Check if the given point is within the half-open cube of this node.
        """
        lower, upper = self.bounds()
        point = np.asarray(point, dtype=float)
        return bool(np.all((point >= lower) & (point < upper)))

    def __repr__(self):
        if self.is_leaf():
            return f"ReconstructionOctree(leaf, origin={self.origin.tolist()}, extent={self.extent}, points={len(self.points)})"
        return f"ReconstructionOctree(node, origin={self.origin.tolist()}, extent={self.extent}, depth={self.depth})"

    # ---------------------- Routing ----------------------
    def _upper_halves(self, point):
        return point >= self.origin + self.half_extent

    def octant_index(self, point):
        x, y, z = self._upper_halves(np.asarray(point, dtype=float))
        return (int(x) << 2) | (int(y) << 1) | int(z)

    def _init_child(self, point, index):
        # same threshold comparison as octant_index, so the child covers the routed point
        child_origin = np.where(self._upper_halves(point), self.origin + self.half_extent, self.origin)
        logger.debug("Materializing octant %d at %s (depth %d)", index, child_origin.tolist(), self.depth - 1)
        return ReconstructionOctree(child_origin, self.half_extent, self.depth - 1, self.reconstructor_factory)

    # ---------------------- Ingestion ----------------------
    def insert(self, point):
        point = _as_point(point)
        if not self.contains(point):
            if self.strict_bounds:
                raise OutOfBoundsError(point, *self.bounds())
            if self._out_of_bounds_count == 0:
                logger.warning("Accepting point %s outside the octree cube, further ones are logged at debug level", point.tolist())
            else:
                logger.debug("Accepting point %s outside the octree cube", point.tolist())
            self._out_of_bounds_count += 1
        self._insert(point)

    def _insert(self, point):
        if self.depth == 0:
            with self._lock:
                self.points.append(point)
            return

        index = self.octant_index(point)
        child = self.children[index]
        if child is None:
            with self._lock:
                child = self.children[index]
                if child is None:
                    child = self._init_child(point, index)
                    self.children[index] = child
        child._insert(point)

    def insert_points(self, points):
        """
        Insert every row of an (N, 3) array in order. Returns the number of points inserted.
        """
        points = np.asarray(points, dtype=float)
        if points.size == 0:
            return 0
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"expected an (N, 3) array of points, got shape {points.shape}")
        for point in points:
            self.insert(point)
        return points.shape[0]

    # ---------------------- Queries ----------------------
    def _present_children(self):
        return [child for child in self.children if child is not None]

    def size(self):
        if self.depth == 0:
            return len(self.points)
        return sum(child.size() for child in self._present_children())

    def points_near(self, location):
        """
        Points of the leaf that `location` routes to, without inserting it.
        Returns an empty list when the route ends at an unmaterialized octant.
        """
        if self.depth == 0:
            with self._lock:
                return [point.copy() for point in self.points]
        child = self.children[self.octant_index(location)]
        if child is None:
            return []
        return child.points_near(location)

    def cluster_count(self):
        if self.depth == 0:
            return 1
        return sum(child.cluster_count() for child in self._present_children())

    def iter_leaves(self):
        if self.depth == 0:
            yield self
            return
        for child in self._present_children():
            yield from child.iter_leaves()

    # ---------------------- Reconstruction ----------------------
    def reconstruct(self):
        if self.depth == 0:
            with self._lock:
                points = np.array(self.points, dtype=float).reshape(-1, 3)
            self.reconstructor.set_points(points)
            self.reconstructor.reconstruct()
            return
        for child in self._present_children():
            child.reconstruct()

    def collect_mesh(self):
        if self.depth == 0:
            mesh = self.reconstructor.mesh
            return Mesh(mesh.vertices.copy(), mesh.normals.copy())
        return Mesh.concatenate(child.collect_mesh() for child in self._present_children())


def collect_leaf_nodes(octree):
    """
    Materialized leaves in octant order.
    """
    return list(octree.iter_leaves())


def collect_nodes_by_depth(octree):
    """
    Collect all materialized nodes grouped by their depth (0 for leaves).
    """
    nodes_by_depth = {}
    def collect(node):
        nodes_by_depth.setdefault(node.depth, []).append(node)
        for child in node.children:
            if child is not None:
                collect(child)
    collect(octree)
    return nodes_by_depth


def reconstruct_parallel(octree, max_workers=None):
    """
    Run the reconstruction of every materialized leaf on a thread pool and wait
    for all of them. The first leaf failure is re-raised once every leaf is done.
    The tree shape must not change while this runs.

    Returns the number of leaves reconstructed.
    """
    leaves = collect_leaf_nodes(octree)
    if not leaves:
        return 0
    logger.info("Reconstructing %d leaves with %s workers", len(leaves), max_workers or "default")
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [executor.submit(leaf.reconstruct) for leaf in leaves]
    for future in futures:
        future.result()
    return len(leaves)
