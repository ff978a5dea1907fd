import logging

import numpy as np
from scipy.spatial import ConvexHull, Delaunay, QhullError

from errors import ReconstructionError
from normals import PCA, compute_local_PCA

logger = logging.getLogger(__name__)


# ---------------------- Triangle Soup Mesh ----------------------
class Mesh:
    """
    Triangle soup: every consecutive triple of rows in `vertices` is one triangle.
    `normals` holds one normal per vertex row.
    """

    def __init__(self, vertices=None, normals=None):
        vertices = np.zeros((0, 3)) if vertices is None else np.asarray(vertices, dtype=float).reshape(-1, 3)
        if vertices.shape[0] % 3 != 0:
            raise ValueError(f"vertex count {vertices.shape[0]} is not a multiple of 3")
        normals = np.zeros_like(vertices) if normals is None else np.asarray(normals, dtype=float).reshape(-1, 3)
        if normals.shape != vertices.shape:
            raise ValueError(f"normals shape {normals.shape} does not match vertices shape {vertices.shape}")
        self.vertices = vertices
        self.normals = normals

    @classmethod
    def empty(cls):
        return cls()

    @classmethod
    def concatenate(cls, meshes):
        meshes = list(meshes)
        if not meshes:
            return cls.empty()
        return cls(np.concatenate([mesh.vertices for mesh in meshes]),
                   np.concatenate([mesh.normals for mesh in meshes]))

    @property
    def triangles(self):
        """(T, 3, 3) view of the vertices, one row of corners per triangle."""
        return self.vertices.reshape(-1, 3, 3)

    def __len__(self):
        return self.vertices.shape[0] // 3

    def __eq__(self, other):
        if not isinstance(other, Mesh):
            return NotImplemented
        return np.array_equal(self.vertices, other.vertices) and np.array_equal(self.normals, other.normals)

    __hash__ = None

    def __repr__(self):
        return f"Mesh(triangles={len(self)})"


# ---------------------- Leaf Reconstructors ----------------------
class Reconstructor:
    """
    Leaf-local reconstruction collaborator.

    The octree hands a leaf's point buffer over with set_points() and triggers
    reconstruct(); the resulting geometry stays available through `mesh` until
    the next reconstruct(). Subclasses implement build_mesh().
    """

    def __init__(self):
        self.points = np.zeros((0, 3))
        self._mesh = Mesh.empty()

    def set_points(self, points):
        self.points = np.array(points, dtype=float).reshape(-1, 3)

    def reconstruct(self):
        try:
            mesh = self.build_mesh(self.points)
        except (ValueError, np.linalg.LinAlgError) as exc:
            raise ReconstructionError(
                f"{type(self).__name__} failed on {self.points.shape[0]} points: {exc}"
            ) from exc
        logger.debug("%s built %d triangles from %d points", type(self).__name__, len(mesh), self.points.shape[0])
        self._mesh = mesh
        return mesh

    @property
    def mesh(self):
        return self._mesh

    def build_mesh(self, points):
        raise NotImplementedError


class PlanarReconstructor(Reconstructor):
    """
    Fits a plane to the leaf by PCA and triangulates the projected points.

    Parameters:
    - max_edge_ratio: triangles with an edge longer than this multiple of the
      median edge length are dropped (spurious boundary triangles).
    - normal_neighbors: neighborhood size of the per-vertex normal estimate.
    - up: the plane normal is flipped to agree with this direction.
    """

    def __init__(self, max_edge_ratio=5.0, normal_neighbors=8, up=(0.0, 0.0, 1.0)):
        super().__init__()
        self.max_edge_ratio = max_edge_ratio
        self.normal_neighbors = normal_neighbors
        self.up = np.asarray(up, dtype=float)

    def build_mesh(self, points):
        if points.shape[0] < 3:
            return Mesh.empty()

        eigenvalues, eigenvectors = PCA(points)
        # all points coincide, or lie on a line
        if eigenvalues[2] <= 1e-12 or eigenvalues[1] <= 1e-12 * eigenvalues[2]:
            return Mesh.empty()

        normal = eigenvectors[:, 0]
        if np.dot(normal, self.up) < 0:
            normal = -normal
        # right-handed frame: basis_u x basis_v == normal
        basis_u = eigenvectors[:, 2]
        basis_v = np.cross(normal, basis_u)

        barycenter = points.mean(axis=0)
        centered = points - barycenter
        points_2d = np.column_stack([centered @ basis_u, centered @ basis_v])

        try:
            simplices = Delaunay(points_2d).simplices.copy()
        except QhullError:
            logger.debug("Delaunay triangulation failed on %d points", points.shape[0])
            return Mesh.empty()

        simplices = self._orient_counter_clockwise(points_2d, simplices)
        simplices = self._filter_long_edges(points_2d, simplices)
        if len(simplices) == 0:
            return Mesh.empty()

        projected = barycenter + points_2d @ np.vstack([basis_u, basis_v])

        k = min(self.normal_neighbors, points.shape[0])
        vertex_normals = compute_local_PCA(
            points, points, nghbrd_search="knn", k=k, reference_direction=normal
        )[1][:, :, 0]

        return Mesh(projected[simplices].reshape(-1, 3), vertex_normals[simplices].reshape(-1, 3))

    @staticmethod
    def _orient_counter_clockwise(points_2d, simplices):
        a, b, c = (points_2d[simplices[:, i]] for i in range(3))
        signed_area = (b - a)[:, 0] * (c - a)[:, 1] - (b - a)[:, 1] * (c - a)[:, 0]
        flip = signed_area < 0
        simplices[flip] = simplices[flip][:, [0, 2, 1]]
        return simplices

    def _filter_long_edges(self, points_2d, simplices):
        corners = points_2d[simplices]  # (T, 3, 2)
        edge_lengths = np.linalg.norm(corners - np.roll(corners, -1, axis=1), axis=2)  # (T, 3)
        max_length = np.median(edge_lengths) * self.max_edge_ratio
        return simplices[np.all(edge_lengths <= max_length, axis=1)]


class ConvexHullReconstructor(Reconstructor):
    """Triangulates the convex hull of the leaf, faces wound outward."""

    def build_mesh(self, points):
        if points.shape[0] < 4:
            return Mesh.empty()
        try:
            hull = ConvexHull(points)
        except QhullError:
            # flat or otherwise degenerate buffer
            return Mesh.empty()

        simplices = hull.simplices.copy()
        outward = hull.equations[:, :3]
        corners = points[simplices]
        face_normals = np.cross(corners[:, 1] - corners[:, 0], corners[:, 2] - corners[:, 0])
        flip = np.einsum("ij,ij->i", face_normals, outward) < 0
        simplices[flip] = simplices[flip][:, [0, 2, 1]]

        return Mesh(points[simplices].reshape(-1, 3), np.repeat(outward, 3, axis=0))


RECONSTRUCTORS = {
    "planar": PlanarReconstructor,
    "hull": ConvexHullReconstructor,
}
