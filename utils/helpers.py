"""
Helper utility functions.

This module contains reusable utility functions used throughout the application.
"""

from typing import Dict, Any
import config


def build_config_response() -> Dict[str, Any]:
    """
    Build a complete configuration response dictionary.

    This function aggregates all configuration settings into a single
    dictionary for the /config/all endpoint.

    Returns:
        dict: Complete configuration dictionary with all mirror settings
    """
    return {
        "gate": config.get_gate_config(),
        "speech": config.get_speech_config(),
        "faceDetection": config.get_face_detection_config(),
        "server": {
            "host": config.FLASK_HOST,
            "port": config.FLASK_PORT,
            "debug": config.FLASK_DEBUG,
            "logLevel": config.LOG_LEVEL,
        },
    }
