"""Design matrix, per-pixel least squares and coefficient labeling."""
