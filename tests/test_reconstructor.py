import numpy as np
import pytest

from errors import OctreeError, ReconstructionError
from reconstructor import ConvexHullReconstructor, Mesh, PlanarReconstructor, Reconstructor


def grid_plane(n=6, size=1.0, offset=(0.0, 0.0), z=0.0, seed=0):
    rng = np.random.default_rng(seed)
    xs, ys = np.meshgrid(np.linspace(0, size, n), np.linspace(0, size, n), indexing='ij')
    points = np.column_stack([xs.ravel() + offset[0], ys.ravel() + offset[1], np.full(n * n, z)])
    points[:, :2] += rng.uniform(-0.01, 0.01, size=(n * n, 2)) * size
    return points


def face_normals(mesh):
    triangles = mesh.triangles
    return np.cross(triangles[:, 1] - triangles[:, 0], triangles[:, 2] - triangles[:, 0])


# ---------------------- Mesh ----------------------
def test_empty_mesh():
    mesh = Mesh.empty()
    assert len(mesh) == 0
    assert mesh.vertices.shape == (0, 3)
    assert mesh.triangles.shape == (0, 3, 3)
    assert Mesh.concatenate([]) == mesh


def test_concatenate_keeps_order():
    first = Mesh(np.zeros((3, 3)), np.ones((3, 3)))
    second = Mesh(np.full((6, 3), 2.0))
    mesh = Mesh.concatenate([first, Mesh.empty(), second])
    assert len(mesh) == 3
    assert mesh.vertices[:3].tolist() == [[0.0] * 3] * 3
    assert mesh.vertices[3:].tolist() == [[2.0] * 3] * 6
    assert mesh.normals[:3].tolist() == [[1.0] * 3] * 3
    assert mesh.normals[3:].tolist() == [[0.0] * 3] * 6


def test_mesh_rejects_partial_triangles():
    with pytest.raises(ValueError):
        Mesh(np.zeros((4, 3)))
    with pytest.raises(ValueError):
        Mesh(np.zeros((3, 3)), np.zeros((6, 3)))


def test_mesh_equality():
    assert Mesh(np.ones((3, 3))) == Mesh(np.ones((3, 3)))
    assert Mesh(np.ones((3, 3))) != Mesh(np.zeros((3, 3)))
    assert Mesh.empty() != "mesh"


# ---------------------- Base contract ----------------------
def test_mesh_is_empty_until_reconstruct():
    reconstructor = PlanarReconstructor()
    reconstructor.set_points(grid_plane())
    assert len(reconstructor.mesh) == 0
    mesh = reconstructor.reconstruct()
    assert len(mesh) > 0
    assert reconstructor.mesh is mesh


def test_set_points_copies():
    reconstructor = PlanarReconstructor()
    points = grid_plane()
    reconstructor.set_points(points)
    points[:] = 0
    assert np.any(reconstructor.points != 0)


def test_base_reconstructor_is_abstract():
    reconstructor = Reconstructor()
    with pytest.raises(NotImplementedError):
        reconstructor.reconstruct()


def test_failures_are_wrapped():
    class SingularReconstructor(Reconstructor):
        def build_mesh(self, points):
            return np.linalg.inv(np.zeros((3, 3)))

    reconstructor = SingularReconstructor()
    with pytest.raises(ReconstructionError) as excinfo:
        reconstructor.reconstruct()
    assert isinstance(excinfo.value, OctreeError)
    assert isinstance(excinfo.value.__cause__, np.linalg.LinAlgError)


# ---------------------- Planar ----------------------
def test_planar_flat_patch():
    reconstructor = PlanarReconstructor()
    reconstructor.set_points(grid_plane(z=2.0))
    mesh = reconstructor.reconstruct()

    assert len(mesh) > 0
    assert np.allclose(mesh.vertices[:, 2], 2.0)
    # counter-clockwise seen from +z
    assert np.all(face_normals(mesh)[:, 2] > 0)
    assert np.allclose(np.abs(mesh.normals[:, 2]), 1.0, atol=1e-6)
    assert np.all(mesh.normals[:, 2] > 0)


def test_planar_tilted_patch_projects_onto_plane():
    points = grid_plane(seed=1)
    points[:, 2] = points[:, 0]
    reconstructor = PlanarReconstructor(up=(0.0, 0.0, 1.0))
    reconstructor.set_points(points)
    mesh = reconstructor.reconstruct()

    expected_normal = np.array([-1.0, 0.0, 1.0]) / np.sqrt(2)
    assert np.allclose(mesh.vertices[:, 2], mesh.vertices[:, 0], atol=1e-9)
    assert np.all(face_normals(mesh) @ expected_normal > 0)
    assert np.allclose(mesh.normals @ expected_normal, 1.0, atol=1e-6)


def test_planar_drops_long_bridging_triangles():
    points = np.vstack([grid_plane(offset=(0.0, 0.0)), grid_plane(offset=(10.0, 0.0), seed=2)])
    reconstructor = PlanarReconstructor(max_edge_ratio=5.0)
    reconstructor.set_points(points)
    mesh = reconstructor.reconstruct()

    triangles = mesh.triangles
    edges = np.linalg.norm(triangles - np.roll(triangles, -1, axis=1), axis=2)
    assert len(mesh) > 0
    assert edges.max() < 2.0


@pytest.mark.parametrize("points", [
    np.zeros((0, 3)),
    np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0]]),
    np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 1.0], [2.0, 2.0, 2.0], [3.0, 3.0, 3.0]]),
    np.ones((5, 3)),
])
def test_planar_degenerate_input_yields_empty_mesh(points):
    reconstructor = PlanarReconstructor()
    reconstructor.set_points(points)
    assert len(reconstructor.reconstruct()) == 0


def test_planar_is_deterministic():
    points = grid_plane(seed=5)
    first, second = PlanarReconstructor(), PlanarReconstructor()
    first.set_points(points)
    second.set_points(points)
    assert first.reconstruct() == second.reconstruct()


# ---------------------- Convex hull ----------------------
def test_hull_of_cube():
    corners = np.array([[x, y, z] for x in (0, 1) for y in (0, 1) for z in (0, 1)], dtype=float)
    reconstructor = ConvexHullReconstructor()
    reconstructor.set_points(corners)
    mesh = reconstructor.reconstruct()

    assert len(mesh) == 12
    centroids = mesh.triangles.mean(axis=1)
    outward = centroids - 0.5
    assert np.all(np.einsum("ij,ij->i", face_normals(mesh), outward) > 0)
    assert np.allclose(np.linalg.norm(mesh.normals, axis=1), 1.0)
    assert np.all(np.einsum("ij,ij->i", mesh.normals[::3], outward) > 0)


@pytest.mark.parametrize("points", [
    np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]),
    grid_plane(n=3),
])
def test_hull_degenerate_input_yields_empty_mesh(points):
    reconstructor = ConvexHullReconstructor()
    reconstructor.set_points(points)
    assert len(reconstructor.reconstruct()) == 0
