"""schemas — Input models and output records of the optimizer."""
