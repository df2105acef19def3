"""API router subpackage for the mosaic service.

Submodules:
    - mosaics: Endpoints for registering, listing, and describing mosaics.
    - tiles: Endpoints serving composed tiles as raw buffers or PNG images.

Each module exposes its own APIRouter for composition in the application's
main FastAPI instance.
"""
