"""
Kick Relay
Relays a live Twitch channel to a Kick stream through ffmpeg, with a small
HTTP control API exposing live status and encoder telemetry.
"""

__version__ = "0.1.0"
__description__ = "Twitch to Kick live relay controller"
