"""Package initializer for the COG mosaic tiling service.

This package composites one or more Cloud Optimized GeoTIFF pyramids into a
single tile pyramid and serves the composed tiles over HTTP.

- Reads source pyramids through rasterio and rio-tiler, locally or remotely
- Verifies that sources share an origin, a resolution ladder and a tile layout
- Stretches samples to 8 bit from explicit ranges, raster statistics or the
  sample type range, and derives an alpha band from nodata and masks
- Composes every tile on demand with concurrent source reads; nothing is
  cached
- Exposes mosaic registration and raw / PNG tiles through FastAPI routers

See module sub-docstrings for details on architecture and usage.
"""
