"""batchproc command-line interface (``batchproc run ...``)."""
