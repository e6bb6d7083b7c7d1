"""AssetTrack: asset-maintenance tracking.

Two halves share this package:

* the backend service (``app.main:app``), wired from ``core``, ``db``,
  ``models``, ``schemas``, ``crud``, ``deps``, ``routers`` and ``services``;
* the client synchronisation core (``app.client``), which keeps a view of the
  records consistent with that service across concurrent sessions.

Importing the package itself has no side effects; the database is only
touched once ``app.main`` is imported.
"""
