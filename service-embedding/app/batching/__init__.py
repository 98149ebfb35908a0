"""Compute placement for the embedding service.

Key pieces
- ``gpu_detector``: detects available accelerators (CUDA GPUs or Apple MPS)
  and picks the device the model is loaded onto.
"""
