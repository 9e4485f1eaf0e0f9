"""
Webhook Event Schemas

Pydantic models for inbound Twitch EventSub and Kick webhook payloads.
Only the fields the notifier reads are declared; everything else is
ignored.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Platform(str, Enum):
	TWITCH = "twitch"
	KICK = "kick"

	@property
	def label(self) -> str:
		return self.value.capitalize()


class _Lenient(BaseModel):
	model_config = ConfigDict(extra="ignore")


class EventSubSubscription(_Lenient):
	"""Subscription block included in every EventSub webhook delivery."""

	id: Optional[str] = None
	type: Optional[str] = None
	version: Optional[str] = None
	status: Optional[str] = None
	condition: Dict[str, Any] = Field(default_factory=dict)


class StreamOnlineEvent(_Lenient):
	"""Event when a stream goes live."""

	broadcaster_user_id: str
	broadcaster_user_login: Optional[str] = None
	broadcaster_user_name: Optional[str] = None
	type: str = Field(default="live")  # Always "live" for stream.online
	started_at: Optional[str] = None

	@field_validator("broadcaster_user_id", mode="before")
	@classmethod
	def _coerce_id(cls, value: Any) -> Any:
		return str(value) if isinstance(value, int) else value


class TwitchWebhookPayload(_Lenient):
	"""Body of a Twitch EventSub webhook request."""

	subscription: Optional[EventSubSubscription] = None
	challenge: Optional[str] = None
	event: Optional[Dict[str, Any]] = None


class KickBroadcaster(_Lenient):
	user_id: Union[int, str]
	username: Optional[str] = None
	profile_picture: Optional[str] = None
	channel_slug: Optional[str] = None


class KickLivestreamStatusEvent(_Lenient):
	"""Body of a Kick ``livestream.status.updated`` webhook."""

	broadcaster: KickBroadcaster
	is_live: bool = False
	title: Optional[str] = None
	started_at: Optional[str] = None
	ended_at: Optional[str] = None
