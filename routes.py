"""
Flask routes for the Emotion Mirror.

Handles the service banner, config, and the mirror session: start/stop, frame,
landmark, expression and raw-score ingestion, state polling, and the speech
announcement hand-off to the browser.
"""

import logging
from typing import Any, Optional, Tuple

from flask import Blueprint, Flask, jsonify, request

import config
from utils.frame_decoder import decode_frame
from utils.helpers import build_config_response

logger = logging.getLogger(__name__)

# Create a blueprint for better organization
api = Blueprint('api', __name__)

# Global mirror session (singleton).
# MirrorSession is imported lazily in start_mirror so the detector stack loads on first start.
mirror_session = None  # type: Optional["MirrorSession"]


def register_routes(app: Flask) -> None:
    """Attach the API blueprint to the application."""
    app.register_blueprint(api)


def _json_body() -> Tuple[Optional[dict], Optional[Any]]:
    """
    Parse the JSON request body.

    Returns:
        (data, None) on success (empty body -> {}), or (None, error response)
    """
    if not request.get_data():
        return {}, None
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None, (jsonify({"error": "Request body must be a JSON object"}), 400)
    return data, None


def _no_session():
    return jsonify({"error": "Mirror session not running. POST /mirror/start first."}), 404


# ============================================================================
# Service Routes
# ============================================================================

@api.route("/")
def index():
    """
    Service banner.

    Returns:
        JSON: name, status and whether a mirror session is running
    """
    return jsonify({
        "service": "emotion-mirror",
        "status": "ok",
        "sessionRunning": mirror_session is not None,
    })


@api.route("/favicon.ico")
def favicon():
    """
    Handle favicon requests.

    Returns:
        Response: Empty 204 response
    """
    return "", 204


# ============================================================================
# Configuration Routes
# ============================================================================

@api.route("/config/all", methods=["GET"])
def get_all_config():
    """
    Get all configuration in one endpoint.

    This is the primary configuration endpoint used by the mirror page
    to initialize (detection interval, speech voice, gate thresholds).

    Returns:
        JSON: Complete configuration dictionary
    """
    return jsonify(build_config_response())


@api.route("/config/gate", methods=["GET"])
def get_gate_config():
    """
    Get emotion gate thresholds, timings and messages.

    Returns:
        JSON: Gate configuration
    """
    return jsonify(config.get_gate_config())


# ============================================================================
# Mirror Session Routes
# ============================================================================

@api.route("/mirror/start", methods=["POST"])
def start_mirror():
    """
    Start a mirror session, replacing any running one.

    Request Body (optional):
        {
            "useDetector": true   // false when the page posts landmarks/expressions itself
        }

    Returns:
        JSON: {"success": true, "message": ..., "useDetector": bool, "state": {...}}
    """
    global mirror_session
    # Lazy import: defer loading the session and detector stack until first start
    from mirror_session import MirrorSession
    from utils.detector_handle import DetectorHandle

    data, error = _json_body()
    if error:
        return error
    use_detector = bool(data.get("useDetector", True))

    try:
        if mirror_session:
            mirror_session.stop()
            mirror_session = None

        session = MirrorSession(detector_handle=DetectorHandle() if use_detector else None)
        session.start()
        mirror_session = session
        print(f"Mirror session started (detector={'on' if use_detector else 'off'})")
        return jsonify({
            "success": True,
            "message": "Mirror session started",
            "useDetector": use_detector,
            "state": session.get_state(),
        })

    except Exception as e:
        logger.warning("Failed to start mirror session: %s", e)
        return jsonify({
            "error": "Failed to start mirror session",
            "details": str(e)
        }), 500


@api.route("/mirror/stop", methods=["POST"])
def stop_mirror():
    """
    Stop the mirror session (cancels gate timers, releases the detector).

    Returns:
        JSON: {"success": true, "message": "Mirror session stopped"}
    """
    global mirror_session

    try:
        if mirror_session:
            mirror_session.stop()
            mirror_session = None

        return jsonify({
            "success": True,
            "message": "Mirror session stopped"
        })

    except Exception as e:
        return jsonify({
            "error": "Failed to stop mirror session",
            "details": str(e)
        }), 500


@api.route("/mirror/frame", methods=["POST"])
def mirror_frame():
    """
    Receive one camera frame from the mirror page and run detection on it.
    Expects raw JPEG body or multipart/form-data with a "frame" or "image" file.

    Returns:
        JSON: {"expression": {...}, "state": {...}}
    """
    session = mirror_session
    if session is None:
        return _no_session()
    try:
        data = None
        if request.files:
            f = request.files.get("frame") or request.files.get("image") or next(iter(request.files.values()), None)
            if f:
                data = f.read()
        if not data:
            data = request.get_data()
        if not data:
            return jsonify({"error": "No image data"}), 400
        frame = decode_frame(data)
        if frame is None:
            return jsonify({"error": "Invalid or unsupported image"}), 400
        result = session.process_frame(frame)
        return jsonify({"expression": result.to_dict(), "state": session.get_state()})
    except Exception as e:
        logger.warning("Frame processing failed: %s", e)
        return jsonify({"error": "Failed to process frame", "details": str(e)}), 500


@api.route("/mirror/landmarks", methods=["POST"])
def mirror_landmarks():
    """
    Score a landmark set detected by the page.

    Request Body:
        {"landmarks": [[x, y, z], ...] | null}

    Returns:
        JSON: {"expression": {...}, "state": {...}}
    """
    session = mirror_session
    if session is None:
        return _no_session()
    data, error = _json_body()
    if error:
        return error
    try:
        result = session.process_landmarks(data.get("landmarks"))
    except (TypeError, ValueError) as e:
        return jsonify({"error": "Invalid landmarks", "details": str(e)}), 400
    except Exception as e:
        logger.warning("Landmark processing failed: %s", e)
        return jsonify({"error": "Failed to process landmarks", "details": str(e)}), 500
    return jsonify({"expression": result.to_dict(), "state": session.get_state()})


@api.route("/mirror/expressions", methods=["POST"])
def mirror_expressions():
    """
    Score a learned-model expression distribution.

    Request Body:
        {"expressions": {"happy": 0.8, "sad": 0.1, ...} | null}

    Returns:
        JSON: {"expression": {...}, "state": {...}}
    """
    session = mirror_session
    if session is None:
        return _no_session()
    data, error = _json_body()
    if error:
        return error
    expressions = data.get("expressions")
    if expressions is not None and not isinstance(expressions, dict):
        return jsonify({"error": "expressions must be an object of label -> probability"}), 400
    try:
        result = session.process_expressions(expressions)
    except Exception as e:
        logger.warning("Expression processing failed: %s", e)
        return jsonify({"error": "Failed to process expressions", "details": str(e)}), 500
    return jsonify({"expression": result.to_dict(), "state": session.get_state()})


@api.route("/mirror/score", methods=["POST"])
def mirror_score():
    """
    Feed a raw composite score (-100..100) to the gate.

    Request Body:
        {"score": number}

    Returns:
        JSON: {"accepted": bool, "state": {...}}
    """
    session = mirror_session
    if session is None:
        return _no_session()
    data, error = _json_body()
    if error:
        return error
    score = data.get("score")
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        return jsonify({"error": "score must be a number"}), 400
    try:
        accepted = session.process_score(score)
    except Exception as e:
        logger.warning("Score processing failed: %s", e)
        return jsonify({"error": "Failed to process score", "details": str(e)}), 500
    return jsonify({"accepted": accepted, "state": session.get_state()})


@api.route("/mirror/state", methods=["GET"])
def get_mirror_state():
    """
    Get the current gate snapshot for the mirror page.

    Returns:
        JSON: {gateState, lockSecondsRemaining, denialMessage, compositeScore,
               popupVisible, speechPlaying, expression, effect, detector, ...}
    """
    session = mirror_session
    if session is None:
        return _no_session()
    try:
        return jsonify(session.get_state())
    except Exception as e:
        return jsonify({
            "error": "Failed to get mirror state",
            "details": str(e)
        }), 500


@api.route("/mirror/announcements", methods=["GET"])
def get_announcements():
    """
    Pending speech requests for the page to speak (consumed on read).

    Returns:
        JSON: {"announcements": [...], "cancelReason": str | null}
    """
    session = mirror_session
    if session is None:
        return _no_session()
    return jsonify(session.speech.get_and_clear_pending())


@api.route("/mirror/speech", methods=["POST"])
def speech_status():
    """
    Playback status reported by the page's speech synthesis.

    Request Body:
        {"playing": bool}

    Returns:
        JSON: {"speechPlaying": bool}
    """
    session = mirror_session
    if session is None:
        return _no_session()
    data, error = _json_body()
    if error:
        return error
    playing = data.get("playing")
    if not isinstance(playing, bool):
        return jsonify({"error": "playing must be a boolean"}), 400
    session.speech.mark_playing(playing)
    return jsonify({"speechPlaying": session.speech.is_playing()})
