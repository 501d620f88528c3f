"""
Feature modules live under this package.

Each module owns its routes/models/service code and reuses platform
primitives (auth, audit, storage, clock, DB session).
"""
