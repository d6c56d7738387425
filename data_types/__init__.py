from .triangle_mesh import TriangleMesh
from .errors import ClassificationIndeterminate, MeshFormatError, MeshIndexError, MeshIOError
