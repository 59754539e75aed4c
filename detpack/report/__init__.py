"""Build report rendering.

Modules
-------
renderer
    ``BuildRenderer`` turns ``BuildResult`` and ``ArchiveManifest`` into
    Rich renderables for terminal display.
"""
