"""
streamalert
Posts a Discord message when tracked Twitch or Kick streamers go live
"""

__version__ = "0.1.0"
