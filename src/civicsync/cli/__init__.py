"""civicsync command-line interface."""
