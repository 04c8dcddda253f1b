"""Satellite agents managed by the orchestrator."""

from .dynamics import DynamicsAgent
from .texture import TextureAgent
from .voice import VoiceAgent

__all__ = ["DynamicsAgent", "TextureAgent", "VoiceAgent"]
