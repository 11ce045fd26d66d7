"""
Room Bundler

Compiles author-written room descriptions into published, versioned
bundles for the 3D viewer.

Pipeline stages:
1. Ingest - Read and validate the room description
2. Normalize - Clamp/snap positions to the room bounds
3. Bundle Assets - Content-addressed copy + reference rewrite (opt-in)
4. Analyze - Advisory warnings
5. Publish - Atomic final/manifest writes, optional preview and index
"""

__version__ = "0.1.0"
