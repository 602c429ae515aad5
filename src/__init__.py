"""visual-garden: image posts for a git-backed static site."""

__version__ = "0.1.0"
