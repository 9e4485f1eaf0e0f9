"""
Ingest layer: webhook signature checks, message dispatch and subscriptions
"""

from .signatures import verify_kick_signature, verify_twitch_signature

__all__ = ["verify_kick_signature", "verify_twitch_signature"]
