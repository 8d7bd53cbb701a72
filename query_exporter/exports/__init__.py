"""Exports: turning a live query cursor into CSV records.

- errors.py: ExportError taxonomy with HTTP statuses
- cells.py: per-cell classification and CSV coercion
- streamer.py: header + batched row streaming into a CSV sink
"""
