# src/geomcore/__init__.py
"""
GeomCore
========
A caching facade in front of a Rhino Compute server.

GeomCore exposes the Grasshopper definitions in a directory to HTTP clients:
- Parameter introspection, normalized across compute releases.
- Solves, cached by definition content hash and input values.
- Wake-on-demand for a compute VM that is deallocated when idle.

Import Guide:
-------------
App:
    from geomcore.main import create_app

Services:
    from geomcore.services import DefinitionService, SolveService

Readiness:
    from geomcore.ops import BackendState, ReadinessController, IdleWatchdog
"""

__version__ = "1.0.0"
