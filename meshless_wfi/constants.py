"""
Shared constants and defaults for meshless weight function integration.
"""

# ---------------------------------------------------------------------------
# Index sentinels
# ---------------------------------------------------------------------------
DOES_NOT_EXIST = -1               # missing local basis / surface index

# ---------------------------------------------------------------------------
# Quadrature
# ---------------------------------------------------------------------------
DEFAULT_INTEGRATION_ORDINATES = 8  # Gauss-Legendre points per dimension
MAX_CACHED_RULES = 32              # cached 1D Gauss-Legendre rules

# ---------------------------------------------------------------------------
# Meshless functions
# ---------------------------------------------------------------------------
# Support radius of a global RBF in units of 1/shape; values beyond
# the radius are truncated to zero
GAUSSIAN_RADIUS_FACTOR = 6.0      # exp(-36) ~ 2e-16
MULTIQUADRIC_RADIUS_FACTOR = 1.0
WENDLAND_RADIUS_FACTOR = 1.0      # compact by construction

# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------
DIMENSIONS = (1, 2, 3)

# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------
# Gradient-moment norms below this fraction of the value-moment norm are
# treated as vanishing
NORM_TOLERANCE = 1.0e-10
