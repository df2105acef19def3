"""Multi-source tile pyramid reconciliation and compositing engine.

The engine reads the catalog of every source (``catalog``), reconciles them
into one ``UnifiedPyramid`` (``alignment``), decides whether the output needs
an alpha band (``alpha``) and, per tile, fetches the raw source tiles
concurrently (``fetch``) and composes them (``compositor``, ``normalize``).
``engine.MosaicEngine`` ties the steps together; ``registry`` keeps the
configured engines of the running service.
"""
