"""
Engine kernel test configuration.

Kernel tests use MemoryStore, SceneSurface and in-memory image loaders.
Nothing here touches the network or a database. Repository tests that
need DATABASE_URL live under backend/tests and skip when it is not set.
"""
