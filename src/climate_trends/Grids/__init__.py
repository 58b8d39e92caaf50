"""Raster snapshots and collections of them."""
