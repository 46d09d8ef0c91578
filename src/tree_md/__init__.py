"""Render a directory tree (and optionally file contents) as Markdown."""
