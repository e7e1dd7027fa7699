"""modules/optimization — Route construction and improvement algorithms."""
