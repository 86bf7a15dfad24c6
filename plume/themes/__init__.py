"""Built-in themes shipped with Plume."""

from pathlib import Path

THEMES_DIR = Path(__file__).parent
DEFAULT_THEME = THEMES_DIR / "default"
