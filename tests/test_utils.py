import matplotlib.pyplot as plt
import numpy as np

from octree import ReconstructionOctree
from utils import plot_mesh, plot_octree, sample_sphere_points, scale_points


def test_scale_points():
    scaled = scale_points([[1.0, 1.0, 1.0], [2.0, -1.0, 0.5]], (0.9, 1.2, 1.0))
    assert np.allclose(scaled, [[0.9, 1.2, 1.0], [1.8, -1.2, 0.5]])


def test_sample_sphere_points():
    points = sample_sphere_points(N=100, radius=2.0, noise=0.0, seed=4)
    assert points.shape == (100, 3)
    assert np.allclose(np.linalg.norm(points, axis=1), 2.0)
    assert np.array_equal(points, sample_sphere_points(N=100, radius=2.0, noise=0.0, seed=4))


def test_plot_octree_draws_one_cube_per_leaf(scenario_tree):
    fig = plt.figure()
    ax = fig.add_subplot(projection='3d')
    plot_octree(scenario_tree, ax)
    assert len(ax.collections) == scenario_tree.cluster_count()
    plt.close(fig)


def test_plot_mesh():
    tree = ReconstructionOctree((-2, -2, -2), 4, 1)
    tree.insert_points(sample_sphere_points(N=300, radius=1.5, seed=1))
    tree.reconstruct()
    mesh = tree.collect_mesh()

    fig = plt.figure()
    ax = fig.add_subplot(projection='3d')
    plot_mesh(mesh, ax)
    assert len(ax.collections) == 1
    plot_mesh(ReconstructionOctree((0, 0, 0), 1, 1).collect_mesh(), ax)
    assert len(ax.collections) == 1
    plt.close(fig)
