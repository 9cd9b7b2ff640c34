"""Constants for temporalmix sample layouts, blend modes and defaults."""

DEFAULT_BIT_DEPTH = 8
MAX_BIT_DEPTH = 32

BLEND_ADD = "add"
BLEND_MULTIPLY = "multiply"
BLEND_SCREEN = "screen"
BLEND_DIFFERENCE = "difference"
BLEND_SUBTRACT = "subtract"
BLEND_AVERAGE = "average"

BLEND_MODES = (
    BLEND_ADD,
    BLEND_MULTIPLY,
    BLEND_SCREEN,
    BLEND_DIFFERENCE,
    BLEND_SUBTRACT,
    BLEND_AVERAGE,
)

DEFAULT_MAX_LAG = 1           # frames a Combine port may lead an empty port
DEFAULT_BACKPRESSURE_WAIT = 0.01  # seconds between sink re-offers
DEFAULT_FPS = 30
