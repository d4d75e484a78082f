"""
The MODEL layer contains pure data structures and business logic.
It has NO knowledge of rendering, input handling or persistence.
It deals with geometry, faces, adjacency and layering.
"""
