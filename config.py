from dataclasses import dataclass, field, fields
from functools import partial
from typing import Optional, Tuple

from octree import ReconstructionOctree
from reconstructor import RECONSTRUCTORS, PlanarReconstructor

# Per-axis scale applied to raw depth-sensor points before insertion
DEFAULT_POINT_SCALE = (0.9, 1.2, 1.0)


@dataclass
class OctreeConfig:
    """Parameters of a reconstruction octree and its leaf reconstructors."""

    origin: Tuple[float, float, float] = (-4.0, -4.0, -4.0)
    extent: float = 8.0
    depth: int = 3
    strict_bounds: bool = False
    max_workers: Optional[int] = None
    reconstructor: str = "planar"
    max_edge_ratio: float = 5.0
    normal_neighbors: int = 8
    point_scale: Tuple[float, float, float] = field(default=DEFAULT_POINT_SCALE)

    def __post_init__(self):
        self.origin = tuple(float(value) for value in self.origin)
        self.point_scale = tuple(float(value) for value in self.point_scale)
        if len(self.origin) != 3:
            raise ValueError(f"origin must have 3 coordinates, got {self.origin}")
        if len(self.point_scale) != 3:
            raise ValueError(f"point_scale must have 3 factors, got {self.point_scale}")
        if self.extent <= 0:
            raise ValueError(f"extent must be positive, got {self.extent}")
        if self.depth < 0:
            raise ValueError(f"depth must be non-negative, got {self.depth}")
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.reconstructor not in RECONSTRUCTORS:
            raise ValueError(
                f"unknown reconstructor {self.reconstructor!r}, expected one of {sorted(RECONSTRUCTORS)}"
            )
        if self.max_edge_ratio <= 0:
            raise ValueError(f"max_edge_ratio must be positive, got {self.max_edge_ratio}")
        if self.normal_neighbors < 3:
            raise ValueError(f"normal_neighbors must be at least 3, got {self.normal_neighbors}")

    @classmethod
    def from_dict(cls, values):
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"unknown configuration keys: {sorted(unknown)}")
        return cls(**values)

    def reconstructor_factory(self):
        reconstructor_cls = RECONSTRUCTORS[self.reconstructor]
        if reconstructor_cls is PlanarReconstructor:
            return partial(
                PlanarReconstructor,
                max_edge_ratio=self.max_edge_ratio,
                normal_neighbors=self.normal_neighbors,
            )
        return reconstructor_cls

    def build_tree(self):
        return ReconstructionOctree(
            self.origin,
            self.extent,
            self.depth,
            reconstructor_factory=self.reconstructor_factory(),
            strict_bounds=self.strict_bounds,
        )
