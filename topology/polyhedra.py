"""
Connected-component ("polyhedron") analysis and cleanup of triangle meshes.

A polyhedron is a maximal set of triangles connected through shared edges.
Components are recomputed on every call; nothing is cached on the mesh.
"""

import logging
from itertools import combinations

import networkx as nx
import numpy as np
from numpy.typing import NDArray
import trimesh

from data_types import TriangleMesh

logger = logging.getLogger(__name__)


def build_face_graph(mesh: TriangleMesh) -> nx.Graph:
    """Graph with one node per triangle and an edge between triangles sharing a mesh edge."""
    graph = nx.Graph()
    graph.add_nodes_from(range(mesh.num_faces))
    for faces in mesh.edge_triangles.values():
        graph.add_edges_from(combinations(faces, 2))
    return graph


def get_polyhedra(mesh: TriangleMesh) -> list[NDArray[np.int64]]:
    """Split the mesh triangles into edge-connected components, ordered by first triangle."""
    graph = build_face_graph(mesh)
    polyhedra = [np.array(sorted(component), dtype=np.int64) for component in nx.connected_components(graph)]
    polyhedra.sort(key=lambda poly: poly[0])
    return polyhedra


def get_signed_triangle_volumes(mesh: TriangleMesh, triangles=None) -> NDArray[np.float64]:
    """Signed volume of the tetrahedron spanned by each triangle and the origin."""
    faces = mesh.triangles if triangles is None else mesh.triangles[np.asarray(triangles, dtype=np.int64)]
    p1, p2, p3 = (mesh.vertices[faces[:, i]] for i in range(3))
    return np.einsum("ij,ij->i", p1, np.cross(p2, p3)) / 6.0


def get_polyhedron_volume(mesh: TriangleMesh, polyhedron) -> float:
    """Enclosed volume of a closed component (divergence theorem)."""
    return abs(float(get_signed_triangle_volumes(mesh, polyhedron).sum()))


def is_polyhedron_hole(mesh: TriangleMesh, polyhedron) -> bool:
    """
    A component is a hole when its faces predominantly point toward its own
    centroid, i.e. the surface is inside-out (an inverted cavity).
    """
    polyhedron = np.asarray(polyhedron, dtype=np.int64)
    if len(polyhedron) == 0:
        return False

    tris = mesh.vertices[mesh.triangles[polyhedron]]
    centers = tris.mean(axis=1)
    centroid = centers.mean(axis=0)
    normals = trimesh.util.unitize(np.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0]))
    return float(np.einsum("ij,ij->i", centers - centroid, normals).sum()) < 0


def _remove_polyhedra(mesh: TriangleMesh, predicate, reason: str) -> int:
    polyhedra = get_polyhedra(mesh)
    selected = [poly for poly in polyhedra if predicate(poly)]
    if not selected:
        return 0

    removal_triangles = np.concatenate(selected)
    mesh.remove_triangles(removal_triangles)
    mesh.remove_extraneous_vertices()
    logger.info("Removed %d of %d polyhedra (%s), %d triangles",
                len(selected), len(polyhedra), reason, len(removal_triangles))
    return len(removal_triangles)


def remove_minimum_volume_polyhedra(mesh: TriangleMesh, volume: float) -> int:
    """Remove components enclosing at most ``volume``. Returns the number of triangles removed."""
    if volume <= 0.0:
        return 0
    return _remove_polyhedra(mesh, lambda poly: get_polyhedron_volume(mesh, poly) <= volume,
                             f"volume <= {volume}")


def remove_minimum_triangle_count_polyhedra(mesh: TriangleMesh, count: int) -> int:
    """Remove components with at most ``count`` triangles."""
    if count <= 0:
        return 0
    return _remove_polyhedra(mesh, lambda poly: len(poly) <= count, f"triangle count <= {count}")


def remove_holes(mesh: TriangleMesh) -> int:
    """Remove inverted components."""
    return _remove_polyhedra(mesh, lambda poly: is_polyhedron_hole(mesh, poly), "inverted")
