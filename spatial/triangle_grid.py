"""
Uniform-grid index from grid cells to the mesh triangles that overlap them.
"""

import logging

import numpy as np
from numpy.typing import NDArray
from tqdm import tqdm

from data_types import TriangleMesh
from .grid import aabb_from_points, get_grid_cell_overlap, grid_index_to_position, triangle_box_overlap

logger = logging.getLogger(__name__)


class TriangleGrid:
    """
    Sparse map from cell index (i, j, k) to a list of triangle indices.

    Cells without an entry are non-surface cells. The index can hold many
    entries for fine grids, so it is meant to be built for one pass and then
    released with ``clear()`` (or by using it as a context manager).
    """

    def __init__(self, shape, dx: float):
        self.shape = tuple(int(n) for n in shape)
        self.dx = float(dx)
        self._cells: dict[tuple[int, int, int], list[int]] = {}

    @classmethod
    def build(cls, mesh: TriangleMesh, shape, dx: float, show_progress: bool = False) -> "TriangleGrid":
        grid = cls(shape, dx)
        grid.update(mesh, show_progress=show_progress)
        return grid

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.clear()

    def __len__(self):
        return len(self._cells)

    def update(self, mesh: TriangleMesh, show_progress: bool = False):
        """Rebuild the index from the mesh's current triangles."""
        self.clear()
        if 0 in self.shape:
            return

        triangle_positions = mesh.vertices[mesh.triangles]
        for tidx in tqdm(range(mesh.num_faces), desc="Indexing triangles", disable=not show_progress):
            for i, j, k in self.get_triangle_grid_cell_overlap(triangle_positions[tidx]).tolist():
                self._cells.setdefault((i, j, k), []).append(tidx)

        logger.debug("Indexed %d triangles into %d surface cells", mesh.num_faces, len(self._cells))

    def get_triangle_grid_cell_overlap(self, tri: NDArray[np.float64]) -> NDArray[np.int64]:
        """Cells whose boxes overlap the triangle, after a bounding-box prefilter."""
        candidates = get_grid_cell_overlap(aabb_from_points(tri), self.dx, self.shape)
        if len(candidates) == 0:
            return candidates
        overlapping = triangle_box_overlap(tri, grid_index_to_position(candidates, self.dx), self.dx)
        return candidates[overlapping]

    def triangles_in_cell(self, g) -> list[int]:
        return self._cells.get(tuple(int(n) for n in g), [])

    def is_surface_cell(self, g) -> bool:
        return tuple(int(n) for n in g) in self._cells

    def surface_cells(self) -> NDArray[np.int64]:
        if not self._cells:
            return np.zeros((0, 3), dtype=np.int64)
        return np.array(sorted(self._cells), dtype=np.int64)

    def surface_mask(self) -> NDArray[np.bool_]:
        mask = np.zeros(self.shape, dtype=bool)
        cells = self.surface_cells()
        mask[cells[:, 0], cells[:, 1], cells[:, 2]] = True
        return mask

    def clear(self):
        self._cells = {}
