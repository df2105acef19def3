"""External collaborators of the mosaic engine.

Submodules:
    - cog_transport: rasterio / rio-tiler implementation of the catalog
      transport.
    - head_info: httpx probes for COG header sizes and JSON metadata.
"""
