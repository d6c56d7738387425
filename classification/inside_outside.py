"""
Inside/outside classification of grid cells against a closed triangle mesh.

A non-surface cell is probed by casting an axis-aligned line through a
jittered point near its center and counting the distinct triangles the line
crosses on each side (odd count means inside). Once one cell of a region
bounded by surface cells is known to be inside, the whole region is
flood-filled, since a 6-connected region enclosed by surface cells cannot
straddle the mesh boundary.

Requires a watertight mesh; near gaps or non-manifold edges the parity, and
therefore the classification, is undefined.
"""

import logging
from collections import deque

import numpy as np
from numpy.typing import NDArray
from tqdm import tqdm

from data_types import ClassificationIndeterminate, TriangleMesh
from spatial import (
    TriangleGrid,
    get_neighbour_grid_indices_6,
    grid_index_to_position,
    is_grid_index_in_range,
    line_intersects_triangles,
)

logger = logging.getLogger(__name__)

# Jitter applied to the probe point, as a fraction of the cell size
JITTER_FRACTION = 0.1

# Barycentric distance from a triangle edge (times dx) below which a hit is ambiguous
EDGE_EPS_FACTOR = 1e-5

# Number of jittered probes tried before a cell is treated as outside
PROBE_ATTEMPTS = 3

RAY_DIRECTION = np.array([1.0, 0.0, 0.0])


def _is_on_triangle_edge(u: float, v: float, eps: float) -> bool:
    return abs(u) < eps or abs(v) < eps or abs(u + v - 1.0) < eps


def get_intersecting_triangles_in_cell(mesh: TriangleMesh, grid: TriangleGrid, g, p, direction,
                                       counted: set) -> list[int]:
    """
    Return the triangles indexed in cell ``g`` that the line through ``p`` crosses
    and that are not yet in ``counted``. Newly found index triples are added to
    ``counted`` so duplicate geometry is only counted once.

    Raises:
        ClassificationIndeterminate: if the line passes within epsilon of a
            triangle edge or vertex, where crossings cannot be counted reliably.
    """
    indices = grid.triangles_in_cell(g)
    if not indices:
        return []

    tris = mesh.vertices[mesh.triangles[indices]]
    hits, _, u, v = line_intersects_triangles(p, direction, tris)
    eps = EDGE_EPS_FACTOR * grid.dx

    intersections = []
    for tidx, hit, ui, vi in zip(indices, hits, u, v):
        if not hit:
            continue
        if _is_on_triangle_edge(ui, vi, eps):
            raise ClassificationIndeterminate(f"line hit an edge of triangle {tidx} in cell {tuple(g)}")

        key = tuple(mesh.triangles[tidx].tolist())
        if key not in counted:
            counted.add(key)
            intersections.append(tidx)
    return intersections


def is_cell_inside_mesh(mesh: TriangleMesh, grid: TriangleGrid, g, rng=None) -> bool:
    """
    Parity test for a single non-surface cell.

    Counts distinct triangle crossings along the X axis on both sides of a
    jittered point inside the cell. The two counts must have the same parity.

    Raises:
        ClassificationIndeterminate: on an edge/vertex hit or a parity mismatch.
    """
    assert is_grid_index_in_range(g, grid.shape)
    assert not grid.is_surface_cell(g)

    rng = np.random.default_rng(rng)
    dx = grid.dx
    jit = JITTER_FRACTION * dx
    p = grid_index_to_position(g, dx) + 0.5 * dx + rng.uniform(-jit, jit, size=3)

    i, j, k = (int(n) for n in g)
    counted = set()
    left = 0
    for n in range(i - 1, -1, -1):
        left += len(get_intersecting_triangles_in_cell(mesh, grid, (n, j, k), p, RAY_DIRECTION, counted))
    right = 0
    for n in range(i + 1, grid.shape[0]):
        right += len(get_intersecting_triangles_in_cell(mesh, grid, (n, j, k), p, RAY_DIRECTION, counted))

    if left % 2 != right % 2:
        raise ClassificationIndeterminate(
            f"crossing parity differs on each side of cell {(i, j, k)}: {left} left, {right} right"
        )
    return left % 2 == 1


def _probe_cell(mesh, grid, g, rng, probe_attempts) -> tuple[bool, bool]:
    """Return (inside, established) after up to ``probe_attempts`` jittered probes."""
    for attempt in range(probe_attempts):
        try:
            return is_cell_inside_mesh(mesh, grid, g, rng), True
        except ClassificationIndeterminate as e:
            logger.debug("Probe %d of cell %s indeterminate: %s", attempt + 1, tuple(g), e)
    return False, False


def floodfill(g, cells: NDArray[np.bool_]):
    """Mark the 6-connected region of unmarked cells containing ``g``."""
    assert is_grid_index_in_range(g, cells.shape)
    g = tuple(int(n) for n in g)
    if cells[g]:
        return

    is_cell_done = np.zeros(cells.shape, dtype=bool)
    queue = deque([g])
    is_cell_done[g] = True
    while queue:
        gp = queue.popleft()
        for n in get_neighbour_grid_indices_6(gp):
            if is_grid_index_in_range(n, cells.shape) and not cells[n] and not is_cell_done[n]:
                is_cell_done[n] = True
                queue.append(n)
        cells[gp] = True


def get_cells_inside_mesh(
    mesh: TriangleMesh,
    shape,
    dx: float,
    rng=None,
    probe_attempts: int = PROBE_ATTEMPTS,
    include_surface: bool = False,
    show_progress: bool = False,
) -> NDArray[np.int64]:
    """
    Find the grid cells enclosed by the mesh.

    Args:
        mesh: Closed triangle mesh
        shape: (gridi, gridj, gridk) grid extent in cells
        dx: Cell size
        rng: Seed or numpy Generator for the probe jitter
        probe_attempts: Jittered probes tried per cell before giving up on it
        include_surface: Also return the cells overlapped by triangles
        show_progress: Display a progress bar over surface cells

    Returns:
        (N, 3) array of cell indices, sorted lexicographically
    """
    shape = tuple(int(n) for n in shape)
    if 0 in shape:
        return np.zeros((0, 3), dtype=np.int64)
    assert probe_attempts >= 1

    rng = np.random.default_rng(rng)
    indeterminate_cells = 0

    with TriangleGrid.build(mesh, shape, dx, show_progress=show_progress) as grid:
        surface_cells = grid.surface_cells()
        surface_mask = grid.surface_mask()

        inside = surface_mask.copy()
        probed_outside = np.zeros(shape, dtype=bool)
        for cell in tqdm(surface_cells.tolist(), desc="Classifying cells", disable=not show_progress):
            for n in get_neighbour_grid_indices_6(cell):
                if not is_grid_index_in_range(n, shape) or inside[n] or probed_outside[n]:
                    continue

                is_inside, established = _probe_cell(mesh, grid, n, rng, probe_attempts)
                if not established:
                    indeterminate_cells += 1
                if is_inside:
                    floodfill(n, inside)
                    break
                probed_outside[n] = True

    if indeterminate_cells:
        logger.warning("%d cells could not be classified and were treated as outside", indeterminate_cells)

    if not include_surface:
        inside &= ~surface_mask
    cells = np.argwhere(inside)
    logger.info("Classified %d cells inside the mesh (%d surface cells)", len(cells), len(surface_cells))
    return cells
