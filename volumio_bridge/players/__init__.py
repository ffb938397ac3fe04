"""
Players — bridges to external playback devices.

A player keeps an attribute model of a playback device (what it plays,
volume, zones, playlists) and forwards commands to it.

Current players:
  volumio.py  — Volumio push/poll bridge (REST API, push notifications)
"""
