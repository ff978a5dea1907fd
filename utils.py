import itertools

import matplotlib.pyplot as plt
import numpy as np
from mpl_toolkits.mplot3d.art3d import Line3DCollection, Poly3DCollection

_CUBE_CORNERS = np.array(list(itertools.product([0, 1], repeat=3)), dtype=float)
_CUBE_EDGES = [(i, j) for i in range(8) for j in range(i + 1, 8) if bin(i ^ j).count("1") == 1]


def plot_octree(node, ax):
    """Draw the wireframe cube of every materialized leaf under node on a 3D axis."""
    if node.is_leaf():
        corners = node.origin + node.extent * _CUBE_CORNERS
        segments = [(corners[i], corners[j]) for i, j in _CUBE_EDGES]
        ax.add_collection3d(Line3DCollection(segments, colors='black', linewidths=0.5))
    else:
        for child in node.children:
            if child is not None:
                plot_octree(child, ax)


def plot_mesh(mesh, ax, color='tab:blue', alpha=0.6):
    if len(mesh) == 0:
        return
    ax.add_collection3d(Poly3DCollection(mesh.triangles, facecolors=color, edgecolors='none', alpha=alpha))


def show_reconstruction(octree, mesh, points=None):
    fig = plt.figure(figsize=(12, 6))

    # Left: points with the octree structure.
    ax = fig.add_subplot(1, 2, 1, projection='3d')
    if points is not None and len(points):
        ax.scatter(points[:, 0], points[:, 1], points[:, 2], color='red', s=1)
    plot_octree(octree, ax)
    ax.set_title('Point Cloud and Octree Structure')

    # Right: composed mesh.
    ax = fig.add_subplot(1, 2, 2, projection='3d')
    plot_mesh(mesh, ax)
    ax.set_title(f'Reconstructed Mesh ({len(mesh)} triangles)')

    lower, upper = octree.bounds()
    for ax in fig.axes:
        ax.set_xlim(lower[0], upper[0])
        ax.set_ylim(lower[1], upper[1])
        ax.set_zlim(lower[2], upper[2])
        ax.set_xlabel('X')
        ax.set_ylabel('Y')
        ax.set_zlabel('Z')

    plt.tight_layout()
    plt.show()


def scale_points(points, scale):
    """Apply a per-axis scale to an (N, 3) array of sensor points."""
    return np.asarray(points, dtype=float).reshape(-1, 3) * np.asarray(scale, dtype=float)


def sample_sphere_points(N=1000, radius=1.0, noise=0.01, seed=None):
    """Generate points on a noisy sphere centred at the origin."""
    rng = np.random.default_rng(seed)
    directions = rng.normal(size=(N, 3))
    directions /= np.linalg.norm(directions, axis=1, keepdims=True)
    return directions * radius + rng.normal(0, noise, (N, 3))
