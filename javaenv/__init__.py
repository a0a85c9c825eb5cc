"""Java project environment: classpaths, IDE descriptors and build stages."""
from __future__ import annotations

__version__ = "1.4.0"

from .cli import main  # noqa: E402

__all__ = ["__version__", "main"]
