"""
Layerfill - Selection, Mask and Layer Compositing Core

Converts canvas selections into image-space masks for AI inpainting,
composites stacks of semi-transparent layers with soft or sharp edges,
and keeps an undo/redo history over the layer stack.
"""

__version__ = "0.3.0"
__author__ = "Layerfill Team"
