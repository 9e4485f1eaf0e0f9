"""
Integration tests for the streamalert HTTP service.

Upstream Twitch, Kick and Discord APIs are replaced with an httpx mock
transport; no network access is needed.
"""
