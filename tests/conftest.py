import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from octree import ReconstructionOctree
from reconstructor import Mesh, Reconstructor


class CentroidReconstructor(Reconstructor):
    """One triangle collapsed onto the leaf centroid; normals carry the point count."""

    def build_mesh(self, points):
        if points.shape[0] == 0:
            return Mesh.empty()
        centroid = points.mean(axis=0)
        return Mesh(np.tile(centroid, (3, 1)), np.full((3, 3), float(points.shape[0])))


@pytest.fixture
def centroid_factory():
    return CentroidReconstructor


@pytest.fixture
def scenario_tree():
    tree = ReconstructionOctree((0, 0, 0), 8, 2, reconstructor_factory=CentroidReconstructor)
    for point in [(1, 1, 1), (7, 7, 7), (1, 1, 7)]:
        tree.insert(point)
    return tree
