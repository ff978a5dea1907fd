import numpy as np


class OctreeError(Exception):
    """Base class for errors raised by the reconstruction octree."""


class OutOfBoundsError(OctreeError, ValueError):
    """A point was inserted outside the root cube while strict bounds are enabled."""

    def __init__(self, point, lower, upper):
        self.point = point
        self.lower = lower
        self.upper = upper
        super().__init__(
            f"point {np.asarray(point).tolist()} lies outside the cube "
            f"[{np.asarray(lower).tolist()}, {np.asarray(upper).tolist()})"
        )


class ReconstructionError(OctreeError):
    """A leaf reconstructor failed on non-degenerate input."""
