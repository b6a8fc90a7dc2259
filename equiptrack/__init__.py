"""EquipTrack: out-of-service / return-to-service tracking for company equipment.

The package is layered the same way top to bottom:

* ``core``: configuration, logging, error types and token handling.
* ``db`` / ``models``: SQLAlchemy engine, sessions and tables.
* ``crud``: the item store, changelog and identity lookups.
* ``services``: the lifecycle manager and read-side views.
* ``routers`` / ``deps``: the FastAPI adapter assembled in ``main``.
"""
