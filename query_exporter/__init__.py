"""Query exporter: run an ad-hoc SQL query and materialize the result as CSV.

- api/: Flask endpoint and the per-request export coordinator
- exports/: cell coercion and the streaming CSV writer
- config/: environment settings and logging
- client/: caller-side helper and CLI
"""
