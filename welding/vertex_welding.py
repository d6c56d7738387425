"""
Merging of near-duplicate vertices, within one mesh or across two meshes.

Matches are found with a k-d tree over the vertex positions. Triangles are
rewritten through an index table that maps each merged vertex to the vertex
that replaces it; a triangle that would collapse (two or more equal indices
after the rewrite) keeps its original indices instead.
"""

import logging

import networkx as nx
import numpy as np
from numpy.typing import NDArray
from scipy.spatial import cKDTree

from data_types import TriangleMesh
from spatial import AABB, aabb_from_points, aabb_intersection, expand_aabb, points_in_aabb

logger = logging.getLogger(__name__)

DEFAULT_JOIN_TOLERANCE = 1e-4
DUPLICATE_VERTEX_EPS = 1e-5


def _closest_candidate(vertices, vidx: int, candidates) -> int:
    candidates = np.sort(np.asarray(candidates, dtype=np.int64))
    dist_sq = np.sum((vertices[candidates] - vertices[vidx]) ** 2, axis=1)
    return int(candidates[np.argmin(dist_sq)])


def _resolve_chains(index_table: NDArray[np.int64]) -> NDArray[np.int64]:
    """Follow a -> b -> c remaps until every entry points at a fixed vertex."""
    while True:
        resolved = index_table[index_table]
        if np.array_equal(resolved, index_table):
            return index_table
        index_table = resolved


def apply_vertex_remap(mesh: TriangleMesh, index_table: NDArray[np.int64]) -> int:
    """
    Rewrite every triangle through ``index_table``.

    Returns:
        int: Number of triangles left on their original vertices because the
        rewrite would have made them degenerate
    """
    original = mesh.triangles
    remapped = index_table[original]
    degenerate = (remapped[:, 0] == remapped[:, 1]) | \
                 (remapped[:, 1] == remapped[:, 2]) | \
                 (remapped[:, 2] == remapped[:, 0])
    mesh.triangles = np.where(degenerate[:, np.newaxis], original, remapped)

    unwelded = int(np.count_nonzero(degenerate & np.any(remapped != original, axis=1)))
    if unwelded:
        logger.debug("Left %d triangles unwelded to avoid collapsing them", unwelded)
    return unwelded


def _find_vertex_pairs_between(vertices, verts1, verts2, tolerance: float) -> NDArray[np.int64]:
    """For each vertex in ``verts1``, the closest vertex of ``verts2`` within ``tolerance``."""
    if len(verts1) == 0 or len(verts2) == 0:
        return np.zeros((0, 2), dtype=np.int64)

    tree = cKDTree(vertices[verts2])
    neighbours = tree.query_ball_point(vertices[verts1], r=tolerance)

    pairs = []
    for vidx, query in zip(verts1, neighbours):
        if len(query) == 0:
            continue
        closest = _closest_candidate(vertices, vidx, verts2[np.asarray(query, dtype=np.int64)])
        pairs.append((vidx, closest))
    return np.array(pairs, dtype=np.int64).reshape(-1, 2)


def join(mesh: TriangleMesh, other: TriangleMesh, tolerance: float = DEFAULT_JOIN_TOLERANCE) -> NDArray[np.int64]:
    """
    Append ``other`` to ``mesh`` and weld its vertices onto coincident vertices of ``mesh``.

    Only vertices inside the overlap of the two meshes' bounding boxes (each grown
    by twice the tolerance) are considered.

    Returns:
        NDArray[np.int64]: (N, 2) matched pairs (mesh vertex, appended vertex),
        in indices of the mesh before orphaned vertices were pruned
    """
    empty = np.zeros((0, 2), dtype=np.int64)
    if other.num_vertices == 0:
        return empty
    if mesh.num_vertices == 0:
        mesh.append(other)
        return empty

    bbox = aabb_intersection(expand_aabb(aabb_from_points(mesh.vertices), 2.0 * tolerance),
                             expand_aabb(aabb_from_points(other.vertices), 2.0 * tolerance))

    index_offset = mesh.num_vertices
    mesh.append(other)
    if bbox is None:
        return empty

    in_box = points_in_aabb(mesh.vertices, bbox)
    verts1 = np.nonzero(in_box[:index_offset])[0]
    verts2 = np.nonzero(in_box[index_offset:])[0] + index_offset

    vertex_pairs = _find_vertex_pairs_between(mesh.vertices, verts1, verts2, tolerance)
    if len(vertex_pairs) == 0:
        return empty

    index_table = np.arange(mesh.num_vertices, dtype=np.int64)
    index_table[vertex_pairs[:, 1]] = vertex_pairs[:, 0]
    apply_vertex_remap(mesh, index_table)
    mesh.remove_extraneous_vertices()

    logger.info("Joined mesh: welded %d vertex pairs", len(vertex_pairs))
    return vertex_pairs


def find_duplicate_vertex_pairs(mesh: TriangleMesh, isize: int, jsize: int, ksize: int, dx: float,
                                eps: float = DUPLICATE_VERTEX_EPS) -> NDArray[np.int64]:
    """
    Pair up vertices closer than ``eps`` inside the grid domain
    [0, isize*dx] x [0, jsize*dx] x [0, ksize*dx].

    Each vertex that is not yet paired is matched with its closest unpaired
    neighbour, and both vertices of the pair are then marked as paired so
    neither can be matched again. Three mutually-close vertices therefore
    only merge two of them.

    Returns:
        NDArray[np.int64]: (N, 2) unique (low, high) index pairs sorted by low index
    """
    domain = AABB(np.zeros(3), np.array([isize, jsize, ksize], dtype=np.float64) * dx)
    candidates = np.nonzero(points_in_aabb(mesh.vertices, domain))[0]
    if len(candidates) < 2:
        return np.zeros((0, 2), dtype=np.int64)

    vertices = mesh.vertices
    tree = cKDTree(vertices[candidates])
    neighbours = tree.query_ball_point(vertices[candidates], r=eps)

    is_paired = np.zeros(mesh.num_vertices, dtype=bool)
    vertex_pairs = []
    for vidx, query in zip(candidates, neighbours):
        if is_paired[vidx]:
            continue
        query = [int(candidates[n]) for n in query]
        query = [q for q in query if q != vidx and not is_paired[q]]
        if not query:
            continue

        closest = _closest_candidate(vertices, vidx, query)
        pair = (min(vidx, closest), max(vidx, closest))
        vertex_pairs.append(pair)
        is_paired[vidx] = is_paired[closest] = True

    vertex_pairs.sort(key=lambda pair: pair[0])
    return np.array(vertex_pairs, dtype=np.int64).reshape(-1, 2)


def _find_duplicate_vertex_groups(mesh: TriangleMesh, isize, jsize, ksize, dx, eps) -> NDArray[np.int64]:
    domain = AABB(np.zeros(3), np.array([isize, jsize, ksize], dtype=np.float64) * dx)
    candidates = np.nonzero(points_in_aabb(mesh.vertices, domain))[0]
    if len(candidates) < 2:
        return np.zeros((0, 2), dtype=np.int64)

    tree = cKDTree(mesh.vertices[candidates])
    close_pairs = tree.query_pairs(r=eps, output_type="ndarray")

    graph = nx.Graph()
    graph.add_edges_from(candidates[close_pairs].tolist())

    vertex_pairs = []
    for component in nx.connected_components(graph):
        root = min(component)
        vertex_pairs.extend((root, v) for v in sorted(component) if v != root)
    vertex_pairs.sort()
    return np.array(vertex_pairs, dtype=np.int64).reshape(-1, 2)


def remove_duplicate_vertices(mesh: TriangleMesh, isize: int, jsize: int, ksize: int, dx: float,
                              eps: float = DUPLICATE_VERTEX_EPS, transitive: bool = False) -> NDArray[np.int64]:
    """
    Merge near-duplicate vertices of a single mesh and prune the orphans.

    By default merging is pairwise (see ``find_duplicate_vertex_pairs``). With
    ``transitive=True`` every cluster of vertices linked by distances below
    ``eps`` collapses onto its lowest index.

    Returns:
        NDArray[np.int64]: (N, 2) (kept vertex, merged vertex) pairs applied,
        in indices of the mesh before pruning
    """
    if transitive:
        vertex_pairs = _find_duplicate_vertex_groups(mesh, isize, jsize, ksize, dx, eps)
    else:
        vertex_pairs = find_duplicate_vertex_pairs(mesh, isize, jsize, ksize, dx, eps)
    if len(vertex_pairs) == 0:
        return vertex_pairs

    index_table = np.arange(mesh.num_vertices, dtype=np.int64)
    index_table[vertex_pairs[:, 1]] = vertex_pairs[:, 0]
    index_table = _resolve_chains(index_table)

    apply_vertex_remap(mesh, index_table)
    mesh.remove_extraneous_vertices()

    logger.info("Merged %d duplicate vertex pairs", len(vertex_pairs))
    return vertex_pairs
