"""ASCII Deck: video to live ASCII art, with real-time and frame-accurate capture."""

__version__ = "1.0.0"
