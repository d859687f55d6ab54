"""
HTTP API — FastAPI application exposing the recommendation service.

Modules
-------
app     : create_app(config) — app factory, lifespan schema bootstrap, error mapping.
routes  : APIRouter with generate / list / detail / interact endpoints.
schemas : Request and response bodies.
"""
