import argparse
import logging

import numpy as np

from config import OctreeConfig
from octree import reconstruct_parallel
from reconstructor import RECONSTRUCTORS
from utils import sample_sphere_points, scale_points, show_reconstruction

logger = logging.getLogger(__name__)


def load_points(path):
    """Load an (N, 3) cloud from a .npy file or a whitespace separated text file."""
    points = np.load(path) if path.endswith('.npy') else np.loadtxt(path, ndmin=2)
    points = np.asarray(points, dtype=float)
    if points.ndim != 2 or points.shape[1] < 3:
        raise ValueError(f"{path}: expected at least 3 columns, got shape {points.shape}")
    return points[:, :3]


def fit_bounds(points, margin=0.05):
    """Cube enclosing the points with a relative margin: (origin, extent)."""
    bbox_min = np.min(points, axis=0)
    bbox_max = np.max(points, axis=0)
    extent = float(np.max(bbox_max - bbox_min))
    pad = margin * extent if extent > 0 else 1.0
    return tuple(bbox_min - pad), extent + 2 * pad


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Reconstruct a mesh from a point cloud, one leaf of an octree at a time.")
    parser.add_argument('input', nargs='?', help="point cloud (.npy or text); a noisy sphere is sampled when omitted")
    parser.add_argument('--samples', type=int, default=2000, help="number of sphere points when no input is given")
    parser.add_argument('--seed', type=int, default=None)
    parser.add_argument('--depth', type=int, default=3)
    parser.add_argument('--origin', type=float, nargs=3, default=None, help="root cube minimum corner")
    parser.add_argument('--extent', type=float, default=None, help="root cube edge length")
    parser.add_argument('--reconstructor', choices=sorted(RECONSTRUCTORS), default='planar')
    parser.add_argument('--max-edge-ratio', type=float, default=5.0)
    parser.add_argument('--workers', type=int, default=None, help="reconstruct leaves on a thread pool")
    parser.add_argument('--strict-bounds', action='store_true', help="reject points outside the root cube")
    parser.add_argument('--sensor-scale', action='store_true', help="apply the per-axis depth-sensor scale to the points")
    parser.add_argument('--output', help="save the mesh vertices (3 rows per triangle) to this .npy file")
    parser.add_argument('--plot', action='store_true')
    parser.add_argument('-v', '--verbose', action='store_true')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.input:
        points = load_points(args.input)
    else:
        points = sample_sphere_points(N=args.samples, seed=args.seed)

    config = OctreeConfig(
        depth=args.depth,
        reconstructor=args.reconstructor,
        max_edge_ratio=args.max_edge_ratio,
        max_workers=args.workers,
        strict_bounds=args.strict_bounds,
    )
    if args.sensor_scale:
        points = scale_points(points, config.point_scale)

    origin, extent = fit_bounds(points)
    config.origin = tuple(args.origin) if args.origin is not None else origin
    config.extent = args.extent if args.extent is not None else extent

    octree = config.build_tree()
    octree.insert_points(points)
    logger.info("Inserted %d points into %d leaves", octree.size(), octree.cluster_count())

    if config.max_workers is not None:
        reconstruct_parallel(octree, max_workers=config.max_workers)
    else:
        octree.reconstruct()
    mesh = octree.collect_mesh()
    print(f"points: {octree.size()}, clusters: {octree.cluster_count()}, triangles: {len(mesh)}")

    if args.output:
        np.save(args.output, mesh.vertices)
        logger.info("Saved mesh to %s", args.output)
    if args.plot:
        show_reconstruction(octree, mesh, points)
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
