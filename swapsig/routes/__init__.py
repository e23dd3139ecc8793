"""
HTTP routes for the swapsig observer API.

Each module exposes a `router` and a `configure()` called once by
swapsig.server.create_app().
"""
