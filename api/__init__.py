"""
API blueprint for BlockHost - JSON endpoints.
Routes are split across modules under api/; this module creates the blueprint
and imports route modules so they register.
"""

from flask import Blueprint

api_bp = Blueprint('api', __name__)


# Import route modules so they register routes on api_bp.
# Order does not matter; each module uses "from api import api_bp".
from api import routes_server, routes_tunnel  # noqa: E402, F401
