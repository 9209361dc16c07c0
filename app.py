"""
=============================================================================
LEARNER ENGAGEMENT ENGINE - APPLICATION ENTRY POINT (app.py)
=============================================================================

WHAT THIS FILE DOES (in plain language):
----------------------------------------
This is the "front door" of the engine. When you run "python app.py", a web
server starts that the lesson player, the speech pipeline and the (optional)
camera pipeline talk to. The server:

  1. Receives learner signals (tab hidden, video progress, quiz answers,
     transcribed speech, face/gaze results).
  2. Fuses them once per second into a State Vector (attention, engagement,
     confusion, frustration, fatigue).
  3. Decides when an intervention (pause the video, ask a question, simplify,
     take a break) should fire, and lets clients poll for it.

The actual URL handlers are defined in routes.py.

HOW TO RUN:
-----------
  - From project root:  python app.py
  - By default the app is at:  http://localhost:5000

CONFIGURATION:
--------------
  - Thresholds, camera and server settings come from the .env file and config.py.
=============================================================================
"""

# ---------------------------------------------------------------------------
# Step 1: Load environment variables from .env (before anything else)
# ---------------------------------------------------------------------------
from pathlib import Path
from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent / ".env")

# ---------------------------------------------------------------------------
# Step 2: Import the web framework and our own modules
# ---------------------------------------------------------------------------
import logging

from flask import Flask
from flask_cors import CORS
from flask_compress import Compress

from routes import register_routes
import config

# ---------------------------------------------------------------------------
# Step 3: Warn the operator about out-of-range settings
# ---------------------------------------------------------------------------
config.warn_invalid_config()


def create_app() -> Flask:
    """
    Create and configure the Flask application (the web server).

    What it does:
      - Creates a new Flask "app" object.
      - Enables CORS so the lesson player can call the API from another origin.
      - Enables compression for larger JSON responses (state, signals).
      - Registers all URL routes by calling register_routes(app).

    Returns:
        The configured Flask application.
    """
    app = Flask(__name__)

    # Allow the browser to call our API from another origin (e.g. the lesson player on another port).
    CORS(app, resources={r"/*": {"origins": "*"}})

    # Compress responses (gzip) when the client supports it.
    Compress(app)

    register_routes(app)

    return app


# ---------------------------------------------------------------------------
# Create the one global Flask application
# ---------------------------------------------------------------------------
app = create_app()


# ---------------------------------------------------------------------------
# Run the server when this file is executed directly (e.g. "python app.py")
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    # FLASK_DEBUG true: Flask's development server with auto-reload.
    # Otherwise: Waitress, a production-style multi-threaded server.
    logging.basicConfig(
        level=logging.INFO if config.ENGAGEMENT_DIAGNOSTIC_LOGGING else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if config.FLASK_DEBUG:
        app.run(
            host=config.FLASK_HOST,
            port=config.FLASK_PORT,
            debug=True
        )
    else:
        import waitress
        waitress.serve(app, host=config.FLASK_HOST, port=config.FLASK_PORT, threads=6)
