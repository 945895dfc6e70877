"""Cold-start trace correlation for multi-process runtime traces."""

from __future__ import annotations

__version__ = "0.3.0"
