"""Portfolio Assistant - backend for the portfolio site's AI chat and data access"""

from __future__ import annotations

__version__ = "1.0.0"
