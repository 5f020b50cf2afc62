"""apos-static - static site export for headless Apostrophe + Astro projects."""

__version__ = "0.1.0"
