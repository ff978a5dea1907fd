# Import numpy package and name it "np"
import numpy as np

# Import functions from scikit-learn
from sklearn.neighbors import KDTree

import logging
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------------------------------
#
#           Functions
#       \***************/
#
#
#   Local PCA used by the leaf reconstructors: plane fitting and normal estimation
#



def PCA(points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Computes the eigenvalues and eigenvectors of the covariance matrix of a point cloud.
    Eigenvalues are sorted in ascending order, so eigenvectors[:, 0] is the normal
    of the best fitting plane.
    """
    barycenter = points.mean(axis=0)
    centered_points = points - barycenter
    cov_matrix = centered_points.T @ centered_points / points.shape[0]

    return np.linalg.eigh(cov_matrix)


def compute_local_PCA(
    query_points: np.ndarray,
    cloud_points: np.ndarray,
    nghbrd_search: str = "spherical",
    radius: Optional[float] = None,
    k: Optional[int] = None,
    d: int = 3,
    reference_direction: Optional[np.ndarray] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Computes PCA on the neighborhoods of all query_points in cloud_points.

    The normal (eigenvectors[:, 0]) of each query point is flipped so that it
    agrees with reference_direction, or points away from the cloud centroid
    when no reference is given.

    Returns:
        all_eigenvalues: (N, d)-array of the eigenvalues associated with each query point.
        all_eigenvectors: (N, d, d)-array of the eigenvectors associated with each query point.
    """
    search = nghbrd_search.lower()
    if search not in ("spherical", "knn"):
        raise ValueError(f"unknown neighborhood search {nghbrd_search!r}")

    kdtree = KDTree(cloud_points)
    neighborhoods = (
        kdtree.query_radius(query_points, radius)
        if search == "spherical"
        else kdtree.query(query_points, k=k, return_distance=False)
    )
    centroid = cloud_points.mean(axis=0)
    # checking the sizes of the neighborhoods
    if search == "spherical":
        neighborhood_sizes = [neighborhood.shape[0] for neighborhood in neighborhoods]
        logger.debug(
            "Average size of neighborhoods: %.4f, standard deviation: %.4f, min: %d, max: %d",
            np.mean(neighborhood_sizes),
            np.std(neighborhood_sizes),
            np.min(neighborhood_sizes),
            np.max(neighborhood_sizes),
        )

    all_eigenvalues = np.zeros((query_points.shape[0], d))
    all_eigenvectors = np.zeros((query_points.shape[0], d, d))

    for i, point in enumerate(query_points):
        eigenvalues, eigenvectors = PCA(cloud_points[neighborhoods[i]])
        normal = eigenvectors[:, 0]  # Smallest eigenvalue corresponds to the normal

        direction = point - centroid if reference_direction is None else reference_direction
        if np.dot(normal, direction) < 0:
            eigenvectors[:, 0] = -normal

        all_eigenvalues[i] = eigenvalues
        all_eigenvectors[i] = eigenvectors

    return all_eigenvalues, all_eigenvectors
