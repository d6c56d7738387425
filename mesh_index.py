import argparse
import logging
import os
import sys

import matplotlib.pyplot as plt
import numpy as np

from classification import get_cells_inside_mesh
from data_types import MeshFormatError, MeshIOError
from mesh_io import load_mesh, save_mesh
from plotting import plot_cells, plot_polyhedra
from spatial import aabb_from_points
from topology import (
    get_polyhedra,
    remove_holes,
    remove_minimum_triangle_count_polyhedra,
    remove_minimum_volume_polyhedra,
)
from welding import remove_duplicate_vertices

logger = logging.getLogger(__name__)

DEFAULT_CELL_SIZE = 1.0
DEFAULT_MIN_VOLUME = 0.0
DEFAULT_MIN_TRIANGLES = 0
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def parse_cli_args(argv=None):
    """Parse command-line arguments and check the input and output paths."""
    parser = argparse.ArgumentParser(
        description='Clean up a watertight triangle mesh and find the grid cells it encloses.')
    parser.add_argument('load_filepath', type=str, help='Path to the .obj or .ply mesh to load')
    parser.add_argument('save_filepath', type=str, help='Path of the cleaned mesh (.obj, .ply or .stl)')
    parser.add_argument('--dx', type=float, default=DEFAULT_CELL_SIZE, help='Grid cell size')
    parser.add_argument('--grid', type=int, nargs=3, metavar=('I', 'J', 'K'), default=None,
                        help='Grid extent in cells; defaults to the extent covering the mesh')
    parser.add_argument('--min-volume', type=float, default=DEFAULT_MIN_VOLUME,
                        help='Remove polyhedra enclosing at most this volume')
    parser.add_argument('--min-triangles', type=int, default=DEFAULT_MIN_TRIANGLES,
                        help='Remove polyhedra with at most this many triangles')
    parser.add_argument('--remove-holes', action='store_true', help='Remove inverted polyhedra')
    parser.add_argument('--weld-eps', type=float, default=None,
                        help='Merge vertices closer than this distance before cleanup')
    parser.add_argument('--cells-out', type=str, default=None,
                        help='Save the (N, 3) inside cell indices to this .npy file')
    parser.add_argument('--seed', type=int, default=None, help='Seed for the classification jitter')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable debug logging and visualizations')

    args = parser.parse_args(argv)

    if not os.path.isfile(args.load_filepath):
        parser.error(f"The file {args.load_filepath} does not exist.")

    save_dir = os.path.dirname(os.path.abspath(args.save_filepath))
    if not os.path.isdir(save_dir):
        parser.error(f"The directory {save_dir} does not exist.")

    if args.dx <= 0:
        parser.error(f"--dx must be positive. Got: {args.dx}")
    if args.grid is not None and any(n < 0 for n in args.grid):
        parser.error(f"--grid extents must be non-negative. Got: {args.grid}")

    return args


def get_grid_shape(mesh, dx: float) -> tuple[int, int, int]:
    """Smallest grid anchored at the origin that covers every vertex."""
    if mesh.num_vertices == 0:
        return 0, 0, 0
    bbox = aabb_from_points(mesh.vertices)
    if np.any(bbox.min < 0):
        logger.warning("Mesh extends below the origin; triangles outside the grid are not indexed")
    shape = np.maximum(np.floor(bbox.max / dx).astype(np.int64) + 1, 1)
    return tuple(int(n) for n in shape)


def visualize_results(mesh, cells, dx):
    fig = plt.figure(figsize=(18, 8))

    ax_polyhedra = fig.add_subplot(121, projection='3d')
    plot_polyhedra(mesh, get_polyhedra(mesh), ax=ax_polyhedra)

    ax_cells = fig.add_subplot(122, projection='3d')
    plot_cells(cells, dx, mesh=mesh, ax=ax_cells)

    plt.tight_layout()
    plt.show()


def main(argv=None):
    args = parse_cli_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format=LOG_FORMAT)

    try:
        mesh = load_mesh(args.load_filepath)
    except (MeshIOError, MeshFormatError) as e:
        logger.error("Error loading the mesh file: %s", e)
        sys.exit(1)

    shape = tuple(args.grid) if args.grid is not None else get_grid_shape(mesh, args.dx)
    logger.info("Using a %d x %d x %d grid with dx = %g", *shape, args.dx)

    if args.weld_eps is not None and args.weld_eps > 0:
        remove_duplicate_vertices(mesh, *shape, args.dx, eps=args.weld_eps)

    remove_minimum_volume_polyhedra(mesh, args.min_volume)
    remove_minimum_triangle_count_polyhedra(mesh, args.min_triangles)
    if args.remove_holes:
        remove_holes(mesh)

    cells = get_cells_inside_mesh(mesh, shape, args.dx, rng=args.seed, show_progress=True)

    if args.verbose:
        visualize_results(mesh, cells, args.dx)

    if not mesh.has_normals:
        mesh.update_vertex_normals()
    try:
        save_mesh(mesh, args.save_filepath)
        if args.cells_out is not None:
            np.save(args.cells_out, cells)
            logger.info("Saved %d cells to %s", len(cells), args.cells_out)
    except (MeshFormatError, OSError) as e:
        logger.error("Error saving results: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
