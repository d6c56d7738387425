from .grid import (
    AABB,
    aabb_from_points,
    aabb_intersection,
    expand_aabb,
    get_grid_cell_overlap,
    get_neighbour_grid_indices_6,
    grid_index_to_position,
    is_grid_index_in_range,
    line_intersects_triangles,
    points_in_aabb,
    position_to_grid_index,
    triangle_box_overlap,
)
from .triangle_grid import TriangleGrid
