"""Rendering subpackage.

Turns decoded :class:`smart_diff.room.RoomData` into pixels and compares
them:

* :mod:`smart_diff.renderer.raster` composites layers into RGBA arrays at a
  given zoom (deterministic, pure).
* :mod:`smart_diff.renderer.diff` computes exact per-pixel difference masks
  and the highlighted composite.
* :mod:`smart_diff.renderer.placeholder` draws the error / incomparable
  stand-in images with Pillow.
"""
