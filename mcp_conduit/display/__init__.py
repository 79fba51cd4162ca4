"""Presentation helpers: logging setup and plain-text status rendering."""
