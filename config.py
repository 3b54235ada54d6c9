"""
Configuration constants for the CT multiplanar reconstruction engine.
All thresholds and configurable parameters are centralized here.
"""

# ==========================================
# Decoder Settings
# ==========================================

# Sanity ceiling for a single element payload (bytes)
DECODER_MAX_ELEMENT_LENGTH = 100_000_000

# Preamble (128 bytes) + "DICM" magic
DECODER_PREAMBLE_LENGTH = 128
DECODER_MAGIC = b"DICM"

# ==========================================
# Loader Settings
# ==========================================

# Parallel reading settings
LOADER_MAX_WORKERS = 4            # Number of parallel threads for file decoding
LOADER_PROGRESS_EVERY = 20        # Report progress every N decoded files

# ==========================================
# Assembly Settings
# ==========================================

# Slices closer than this along the normal are treated as coincident (mm)
ASSEMBLY_MIN_SPACING_MM = 1e-6

# Depth spacing used when a series holds a single slice without SliceThickness
ASSEMBLY_DEFAULT_SLICE_THICKNESS_MM = 1.0

# ==========================================
# Window Settings (center, width) in HU
# ==========================================
DEFAULT_WINDOW = (0.0, 2000.0)

WINDOW_PRESETS = {
    "soft_tissue": (50.0, 350.0),
    "bone":        (500.0, 2000.0),
    "lung":        (-600.0, 1600.0),
    "brain":       (40.0, 80.0),
    "liver":       (60.0, 160.0),
    "mediastinum": (50.0, 400.0),
    "spine":       (250.0, 1000.0),
}

# Smallest usable window width; narrower windows become a hard threshold
WINDOW_MIN_WIDTH = 1e-6

DEFAULT_INTERPOLATION = "trilinear"   # "nearest" | "trilinear"

# ==========================================
# Navigation Settings
# ==========================================

# Focus updates smaller than this (mm, per axis) are ignored
FOCUS_MIN_DELTA_MM = 0.01

DEFAULT_VIEWPORT = (512, 512)

# ==========================================
# Contour Settings
# ==========================================

# Crossing points closer than this (mm) are merged
CONTOUR_DEDUP_THRESHOLD_MM = 1.0

# Native-plane contour lookup tolerance (mm)
CONTOUR_SLICE_TOLERANCE_MM = 1.0

# Fallback display color (rgb, 0..1)
DEFAULT_ROI_COLOR = (1.0, 0.0, 0.0)

# Name-keyed display colors used when a structure set carries none
STANDARD_ROI_COLORS = {
    "brain":       (1.0, 0.7, 0.7),
    "brainstem":   (1.0, 0.5, 0.0),
    "spinal cord": (1.0, 1.0, 0.0),
    "heart":       (1.0, 0.0, 0.0),
    "lung":        (0.0, 1.0, 1.0),
    "liver":       (0.6, 0.3, 0.0),
    "kidney":      (0.8, 0.4, 0.2),
    "bladder":     (1.0, 1.0, 0.5),
    "rectum":      (0.6, 0.3, 0.1),
    "prostate":    (0.5, 0.0, 0.5),
    "ptv":         (1.0, 0.0, 1.0),
    "ctv":         (0.0, 0.0, 1.0),
    "gtv":         (1.0, 0.0, 0.0),
    "body":        (0.0, 1.0, 0.0),
    "external":    (0.0, 1.0, 0.0),
}

# ==========================================
# Volume Rendering (ray casting)
# ==========================================

# Stop marching once accumulated opacity reaches this value
RAYCAST_TERMINATION_ALPHA = 0.95

RAYCAST_DEFAULT_IMAGE_SIZE = (256, 256)    # width, height
RAYCAST_DEFAULT_ROTATION_DEG = 0.0
RAYCAST_DEFAULT_WINDOW = (40.0, 400.0)

# Piecewise tissue transfer function:
# (hu_min, hu_max, (r, g, b), base opacity), first match wins
TRANSFER_FUNCTION_BANDS = (
    (-1024.0, -500.0, (0.0, 0.0, 0.0), 0.0),    # air / lung
    (-500.0, -100.0, (0.8, 0.6, 0.5), 0.02),    # fat
    (-100.0, 300.0, (0.9, 0.4, 0.3), 0.08),     # soft tissue
    (300.0, 4000.0, (1.0, 1.0, 0.95), 0.6),     # bone
)
