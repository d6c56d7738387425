"""
Grid, bounding box and intersection primitives shared by the spatial index,
the inside/outside classifier and the vertex welder.

Cell (i, j, k) of a grid with cell size dx covers the world-space box
[i*dx, (i+1)*dx) x [j*dx, (j+1)*dx) x [k*dx, (k+1)*dx).
"""

from typing import NamedTuple, Optional

import numpy as np
from numpy.typing import NDArray


class AABB(NamedTuple):
    min: NDArray[np.float64]
    max: NDArray[np.float64]

    @property
    def size(self) -> NDArray[np.float64]:
        return self.max - self.min


def grid_index_to_position(g, dx: float) -> NDArray[np.float64]:
    """World position of the minimum corner of cell ``g``."""
    return np.asarray(g, dtype=np.float64) * dx


def position_to_grid_index(p, dx: float) -> NDArray[np.int64]:
    return np.floor(np.asarray(p, dtype=np.float64) / dx).astype(np.int64)


def is_grid_index_in_range(g, shape) -> bool:
    i, j, k = g
    return 0 <= i < shape[0] and 0 <= j < shape[1] and 0 <= k < shape[2]


def get_neighbour_grid_indices_6(g) -> list[tuple[int, int, int]]:
    i, j, k = g
    return [
        (i - 1, j, k), (i + 1, j, k),
        (i, j - 1, k), (i, j + 1, k),
        (i, j, k - 1), (i, j, k + 1),
    ]


# ---------------------------------------------------------------------------
# Axis-aligned boxes
# ---------------------------------------------------------------------------

def aabb_from_points(points) -> AABB:
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    return AABB(points.min(axis=0), points.max(axis=0))


def expand_aabb(bbox: AABB, width: float) -> AABB:
    """Grow the box by ``width`` along each axis, half on each side."""
    half = 0.5 * width
    return AABB(bbox.min - half, bbox.max + half)


def aabb_intersection(a: AABB, b: AABB) -> Optional[AABB]:
    """Overlap of two boxes, or None if they are disjoint."""
    lo = np.maximum(a.min, b.min)
    hi = np.minimum(a.max, b.max)
    if np.any(hi < lo):
        return None
    return AABB(lo, hi)


def points_in_aabb(points, bbox: AABB) -> NDArray[np.bool_]:
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    return np.all((points >= bbox.min) & (points <= bbox.max), axis=1)


def get_grid_cell_overlap(bbox: AABB, dx: float, shape) -> NDArray[np.int64]:
    """(N, 3) indices of the in-range cells whose boxes overlap ``bbox``."""
    shape = np.asarray(shape, dtype=np.int64)
    # Cell range covered by the box, then clamped to the grid
    lo = position_to_grid_index(bbox.min, dx)
    hi = position_to_grid_index(bbox.max, dx)
    if np.any(hi < 0) or np.any(lo >= shape):
        return np.zeros((0, 3), dtype=np.int64)

    lo = np.clip(lo, 0, shape - 1)
    hi = np.clip(hi, 0, shape - 1)
    ii, jj, kk = np.meshgrid(
        np.arange(lo[0], hi[0] + 1),
        np.arange(lo[1], hi[1] + 1),
        np.arange(lo[2], hi[2] + 1),
        indexing="ij",
    )
    return np.stack([ii.ravel(), jj.ravel(), kk.ravel()], axis=1)


# ---------------------------------------------------------------------------
# Box-triangle overlap (separating axis theorem)
# ---------------------------------------------------------------------------

def triangle_box_overlap(tri: NDArray[np.float64], box_min: NDArray[np.float64],
                         box_size) -> NDArray[np.bool_]:
    """
    Test one triangle against many axis-aligned boxes.

    Thirteen candidate separating axes are checked: the three box face normals,
    the triangle normal and the nine cross products of box axes with triangle
    edges. Touching counts as overlapping.

    Args:
        tri: (3, 3) triangle vertices
        box_min: (N, 3) minimum corners of the boxes
        box_size: scalar or (3,) box extent

    Returns:
        (N,) boolean array, True where the box overlaps the triangle
    """
    tri = np.asarray(tri, dtype=np.float64)
    box_min = np.asarray(box_min, dtype=np.float64).reshape(-1, 3)
    half = 0.5 * np.broadcast_to(np.asarray(box_size, dtype=np.float64), (3,))
    centers = box_min + half

    # Triangle vertices relative to each box center: (N, 3 vertices, 3 coords)
    rel = tri[np.newaxis, :, :] - centers[:, np.newaxis, :]

    # Box face normals, triangle normal, then edge cross products
    edges = [tri[1] - tri[0], tri[2] - tri[1], tri[0] - tri[2]]
    box_axes = np.eye(3)
    axes = list(box_axes)
    axes.append(np.cross(edges[0], edges[1]))
    for a in box_axes:
        for e in edges:
            axes.append(np.cross(a, e))

    # Separated if the projected triangle lies wholly outside the projected box on any axis
    separated = np.zeros(len(box_min), dtype=bool)
    for axis in axes:
        projections = rel @ axis
        radius = np.dot(half, np.abs(axis))
        separated |= (projections.min(axis=1) > radius) | (projections.max(axis=1) < -radius)
    return ~separated


# ---------------------------------------------------------------------------
# Line-triangle intersection (Möller–Trumbore)
# ---------------------------------------------------------------------------

def line_intersects_triangles(origin, direction, tris: NDArray[np.float64]):
    """
    Intersect the infinite line ``origin + t * direction`` with many triangles.

    Args:
        origin: (3,) point on the line
        direction: (3,) line direction
        tris: (M, 3, 3) triangle vertices

    Returns:
        hits: (M,) bool, True where the line crosses the closed triangle
        points: (M, 3) intersection points (meaningless where not hit)
        u, v: (M,) barycentric weights of the second and third vertices
    """
    origin = np.asarray(origin, dtype=np.float64)
    direction = np.asarray(direction, dtype=np.float64)
    tris = np.asarray(tris, dtype=np.float64).reshape(-1, 3, 3)

    e1 = tris[:, 1] - tris[:, 0]
    e2 = tris[:, 2] - tris[:, 0]
    h = np.cross(direction, e2)
    det = np.einsum("ij,ij->i", e1, h)

    # Line parallel to the triangle plane
    parallel = np.abs(det) < 1e-12
    inv_det = np.where(parallel, 0.0, 1.0 / np.where(parallel, 1.0, det))

    # Barycentric coordinates and line parameter of the hit
    s = origin - tris[:, 0]
    u = inv_det * np.einsum("ij,ij->i", s, h)
    q = np.cross(s, e1)
    v = inv_det * (q @ direction)
    t = inv_det * np.einsum("ij,ij->i", e2, q)

    # Closed triangle: edges and corners count as hits
    hits = ~parallel & (u >= 0.0) & (v >= 0.0) & ((u + v) <= 1.0)
    points = origin + t[:, np.newaxis] * direction
    return hits, points, u, v
