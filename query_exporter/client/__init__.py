"""Caller-side helper for the export endpoint.

Posts a query to a running exporter and returns where the CSV landed.
See `query_exporter/client/core.py`.
"""
