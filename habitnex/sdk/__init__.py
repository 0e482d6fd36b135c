"""
SDK for HabitNex.

Provides the chat-completion client used by the AI endpoints.
"""

from .openai_client import AICompletion, HabitAIClient, create_ai_client

__all__ = ["AICompletion", "HabitAIClient", "create_ai_client"]
