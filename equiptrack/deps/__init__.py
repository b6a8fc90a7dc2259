# Marks `equiptrack.deps` as a package so `from equiptrack.deps.auth import get_actor` resolves.
