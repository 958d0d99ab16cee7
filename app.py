"""
=============================================================================
EMOTION MIRROR: APPLICATION ENTRY POINT (app.py)
=============================================================================

WHAT THIS FILE DOES (in plain language):
----------------------------------------
This is the "front door" of the mirror server. When you run "python app.py",
a web server starts that the mirror page talks to. The server:

  1. Receives camera frames (or face landmarks) from the mirror page.
  2. Scores the visitor's expression and runs the emotion gate
     (approve a smile, deny and then lock an angry or sad face).
  3. Hands speech announcements, visual effects and the approval popup back
     to the page, which renders and speaks them.

The actual request handlers are defined in routes.py.

HOW TO RUN:
-----------
  - From project root:  python app.py
  - By default the app is at:  http://localhost:5000

CONFIGURATION:
--------------
  - Settings (thresholds, timings, messages, port) come from the .env file
    and config.py.
=============================================================================
"""

# ---------------------------------------------------------------------------
# Step 1: Load environment variables from .env (before anything else)
# ---------------------------------------------------------------------------
# config.py reads its values when first imported, so .env must be loaded first.
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
# Step 3: Logging and configuration checks
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
config.warn_missing_config()


def create_app() -> Flask:
    """
    Create and configure the Flask application (the web server).

    What it does:
      - Creates a new Flask "app" object.
      - Enables CORS so the mirror page can call the API from another origin
        (e.g. a kiosk page served from a different port).
      - Enables compression for larger responses (state with expression detail).
      - Registers all URL routes by calling register_routes(app).

    Returns:
        The configured Flask application.
    """
    app = Flask(__name__)

    # Allow the mirror page to call our API from another origin.
    CORS(app, resources={r"/*": {"origins": "*"}})

    # Compress responses (gzip) when the client supports it.
    Compress(app)

    # Attach all our URL rules (/, /config/*, /mirror/*) to this app.
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
    # FLASK_DEBUG=true: Flask's development server with reloader and debugger.
    # Otherwise Waitress serves the app with several worker threads.
    print(f"Emotion mirror listening on http://{config.FLASK_HOST}:{config.FLASK_PORT}")
    if config.FLASK_DEBUG:
        app.run(
            host=config.FLASK_HOST,
            port=config.FLASK_PORT,
            debug=True
        )
    else:
        import waitress
        waitress.serve(app, host=config.FLASK_HOST, port=config.FLASK_PORT, threads=6)
