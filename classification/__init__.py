from .inside_outside import floodfill, get_cells_inside_mesh, is_cell_inside_mesh
