"""Core package turning timed subtitle cues into one synchronized voice track.

The CLI script imports these modules; each stage (text cleanup, synthesis,
tempo correction, mixing, loudness normalization) lives in its own module.
"""

__version__ = "0.1.0"
