"""
Binary STL writer.

80-byte header (zeros), uint32 triangle count, then per triangle twelve
float32 (normal, vertex 1, vertex 2, vertex 3) and a uint16 attribute (0).
"""

import logging
from pathlib import Path
from typing import Union

import numpy as np
import trimesh

from data_types import MeshIOError, TriangleMesh

logger = logging.getLogger(__name__)

STL_HEADER_SIZE = 80

STL_TRIANGLE_DTYPE = np.dtype([
    ("normal", "<f4", (3,)),
    ("vertices", "<f4", (3, 3)),
    ("attributes", "<u2"),
])


def encode_stl(mesh: TriangleMesh) -> bytes:
    """
    Serialize the mesh as binary STL. Facet normals are the normalized sum of
    the three vertex normals; when the mesh has none they are computed for
    the export without being stored.
    """
    records = np.zeros(mesh.num_faces, dtype=STL_TRIANGLE_DTYPE)
    if mesh.num_faces > 0:
        normals = mesh.normals if mesh.has_normals else mesh.compute_vertex_normals()
        records["normal"] = trimesh.util.unitize(normals[mesh.triangles].sum(axis=1))
        records["vertices"] = mesh.vertices[mesh.triangles]

    count = np.array([mesh.num_faces], dtype="<u4")
    return bytes(STL_HEADER_SIZE) + count.tobytes() + records.tobytes()


def save_stl(mesh: TriangleMesh, path: Union[str, Path]):
    path = Path(path)
    data = encode_stl(mesh)
    try:
        path.write_bytes(data)
    except OSError as e:
        raise MeshIOError(f"Unable to write the STL file {path}") from e
    logger.info("Saved %s (%d triangles)", path, mesh.num_faces)
