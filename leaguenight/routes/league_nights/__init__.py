"""League-night session blueprint."""
from flask import Blueprint

league_nights_bp = Blueprint('league_nights', __name__)

# Route modules register their routes by importing league_nights_bp.
# These imports MUST come after league_nights_bp is defined.
from leaguenight.routes.league_nights import checkins, partnerships, matches, lifecycle  # noqa: E402, F401
