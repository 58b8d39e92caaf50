"""Temporal grouping, aggregation and the xarray trends accessor."""
