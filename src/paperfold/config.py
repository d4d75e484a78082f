"""
Configuration & Tolerances
==========================
This module serves as the central registry for the numeric constants used by
the folding core.

Why is this file needed?
------------------------
1. Geometry tests compare floats. The tolerances below gate coplanarity,
   collinearity, seam deduplication and boundary-point retention, and they are
   tuned against each other. Keeping them in one place prevents a module from
   quietly drifting to a different scale.
2. Defaults: the sheet of paper created for a fresh project and its thickness.

Exports:
    COLLINEAR_TOLERANCE (float): Coplanarity/collinearity tolerance.
    MERGE_POINT_TOLERANCE (float): Distance under which seam points are merged.
    STRAIGHT_ANGLE_COSINE (float): Cosine below which a boundary vertex is straight.
    DEFAULT_PAPER_VERTICES (tuple): Corners of the default sheet (clockwise).
"""

# Geometry tolerances
COLLINEAR_TOLERANCE: float = 0.01
MERGE_POINT_TOLERANCE: float = 0.05
STRAIGHT_ANGLE_COSINE: float = -0.97
MIN_NORMALIZE_LENGTH: float = 0.01
OVERLAP_AREA_TOLERANCE: float = 1e-6

# Angles are in degrees
ANGLE_TOLERANCE: float = 1e-6
STABLE_ANGLES: tuple[float, ...] = (0.0, 180.0, 360.0)
FLAT_ANGLE: float = 180.0

# Paper
PAPER_THICKNESS: float = 0.01
DEFAULT_PAPER_VERTICES: tuple[tuple[float, float], ...] = (
    (-3.0, -3.0),
    (-3.0, 3.0),
    (3.0, 3.0),
    (3.0, -3.0),
)
