"""Processing kernels: built-in catalogue, audit gate and registry."""
