"""
Core modules for HabitNex.

This package contains the response cache, rate limiting and quota
guardrails, usage tracking, the AI request orchestrator and the habit/mood
analytics engines.
"""
