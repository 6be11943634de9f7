# Package
from flask import Blueprint

api_bp = Blueprint("api", __name__)

from dbr_planner.api import routes
