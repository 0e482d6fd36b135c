"""
Request orchestration for the AI endpoints.

Each request runs the same pipeline: enabled check, authentication, input
validation, quota, cache lookup, model call, response parsing, then cache
store and usage record. Every outcome becomes an OrchestratorResult holding
the HTTP status and JSON body; nothing raises past the orchestrator.

Cache and limiter state is held in process memory, so the orchestrator
assumes a single server process.
"""

import logging
import math
import random
import re
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Optional

from habitnex.config.loader import AppConfig
from habitnex.sdk.openai_client import HabitAIClient
from habitnex.storage.repository import HabitRepository

from . import metrics
from .cache import ResponseCache, fingerprint
from .errors import ErrorKind, HabitNexError, NoMoodDataError, UpstreamParseError
from .guardrails import QuotaDecision, QuotaGuard
from .mood_analysis import calculate_mood_trends, identify_mood_patterns, perform_mood_analysis
from .parsing import extract_json_array, extract_json_object
from .pricing import calculate_cost
from .prompts import (
    COMMON_HABITS,
    HABIT_RECOMMENDATION_SYSTEM,
    habit_enhance_prompt,
    habit_recommendation_prompt,
    mood_pattern_analysis_prompt,
    quick_insight_prompt,
)
from .schemas import (
    EnhanceHabitRequest,
    MoodAnalysisRequest,
    QuickInsightRequest,
    RecommendHabitsRequest,
    parse_request,
)
from .telemetry import span
from .token_counter import TokenUsage
from .usage_tracking import UsageTracker

logger = logging.getLogger(__name__)

ENHANCE_HABIT = "enhance-habit"
MOOD_ANALYSIS = "mood-analysis"
QUICK_INSIGHT = "quick-insight"
RECOMMEND_HABITS = "recommend-habits"

MIN_ANALYSIS_DAYS = 7
MAX_ANALYSIS_DAYS = 90
MIN_AI_MOOD_POINTS = 7

_DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}", re.ASCII)

DEFAULT_MOOD_INSIGHTS = {
    "aiInsight": "Analysis complete. Continue tracking for more personalized insights.",
    "primaryFactor": "mood",
    "aiRecommendation": "Keep maintaining consistent mood and habit tracking.",
    "encouragement": "Great job tracking your patterns! Every data point helps build better habits.",
}


@dataclass(frozen=True)
class OrchestratorResult:
    """HTTP status and JSON body for one request."""
    status_code: int
    body: Dict[str, Any]


def _error_result(exc: HabitNexError) -> OrchestratorResult:
    return OrchestratorResult(exc.status_code, exc.to_body())


def _usage(input_tokens: int, output_tokens: int, remaining: int) -> Dict[str, int]:
    return {
        "inputTokens": input_tokens,
        "outputTokens": output_tokens,
        "totalTokens": input_tokens + output_tokens,
        "remainingRequests": remaining,
    }


def insight_cache_key(habit_name: str, streak: int, completion_rate: float) -> str:
    """Insight cache key; completion rate is bucketed to tens."""
    bucket = int(math.floor(completion_rate / 10) * 10)
    return f"insight_{habit_name}_{streak}_{bucket}"


def template_insight(habit_name: str, streak: int, completion_rate: float) -> Optional[str]:
    """Canned motivational message for common progress states, or None."""
    if streak == 0:
        return f"Every journey starts with a single step - let's make today day 1 of your {habit_name} habit!"
    if streak == 1:
        return f"Great start with {habit_name}! Day 1 is done - momentum is building. Keep it going!"
    if 7 <= streak < 14:
        return (
            f"One week of {habit_name} completed! You're forming a real habit now. "
            "The hardest part is behind you."
        )
    if streak >= 21:
        return f"{streak} days of {habit_name}! This is becoming part of who you are. Your consistency is inspiring!"
    if completion_rate >= 80:
        return (
            f"{completion_rate:g}% completion with {habit_name} is excellent! "
            "You're mastering this habit. What's your secret?"
        )
    if completion_rate < 50:
        return (
            f"{habit_name} can be challenging - what if you tried a smaller version tomorrow? "
            "Progress over perfection!"
        )
    return None


def fallback_insight(habit_name: str) -> str:
    return f"Keep going with {habit_name}! Every step counts toward building lasting habits."


def validate_date_range(start_date: Optional[str], end_date: Optional[str]) -> int:
    """Check a mood-analysis window.

    Returns:
        Number of days between the two dates

    Raises:
        HabitNexError: With kind INVALID_INPUT and a message naming the problem
    """
    if not start_date or not end_date:
        raise HabitNexError("startDate and endDate are required", ErrorKind.INVALID_INPUT)

    try:
        if not _DATE_PATTERN.fullmatch(start_date) or not _DATE_PATTERN.fullmatch(end_date):
            raise ValueError("dates must be YYYY-MM-DD")
        start = date.fromisoformat(start_date)
        end = date.fromisoformat(end_date)
    except ValueError:
        raise HabitNexError("Dates must be in YYYY-MM-DD format", ErrorKind.INVALID_INPUT)

    if start > end:
        raise HabitNexError("startDate must be before endDate", ErrorKind.INVALID_INPUT)

    days = (end - start).days
    if days > MAX_ANALYSIS_DAYS:
        raise HabitNexError(f"Date range cannot exceed {MAX_ANALYSIS_DAYS} days", ErrorKind.INVALID_INPUT)
    if days < MIN_ANALYSIS_DAYS:
        raise HabitNexError(
            f"Minimum {MIN_ANALYSIS_DAYS} days of data required for meaningful analysis",
            ErrorKind.INVALID_INPUT,
        )
    return days


class Orchestrator:
    """Runs the AI endpoint pipelines.

    Args:
        config: Application configuration
        ai_client: Model client; None means AI features are disabled
        tracker: Usage ledger writer
        quota: Per-endpoint limiter and budget ceilings
        habit_repository: Source of habit and mood data for analysis
        cache: Habit enhancement cache, seeded with COMMON_HABITS by default
        insight_cache: Quick insight cache
        rng: Returns a float in [0, 1); drives probabilistic cache cleanup
        clock: Callable returning the current time
    """

    def __init__(
        self,
        config: AppConfig,
        ai_client: Optional[HabitAIClient],
        tracker: UsageTracker,
        quota: QuotaGuard,
        habit_repository: HabitRepository,
        cache: Optional[ResponseCache] = None,
        insight_cache: Optional[ResponseCache] = None,
        rng: Callable[[], float] = random.random,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.ai_client = ai_client
        self.tracker = tracker
        self.quota = quota
        self.habit_repository = habit_repository
        self.cache = cache or ResponseCache(
            static_entries=COMMON_HABITS,
            ttl=_ttl(config),
            unit_cost=config.cache.estimated_unit_cost,
            clock=clock,
        )
        self.insight_cache = insight_cache or ResponseCache(
            ttl=_ttl(config),
            unit_cost=config.cache.estimated_unit_cost,
            clock=clock,
        )
        self._rng = rng
        self._clock = clock

    @property
    def ai_enabled(self) -> bool:
        return self.ai_client is not None

    def _request_id(self, endpoint: str, user_id: str) -> str:
        return f"{endpoint}-{user_id}-{int(self._clock().timestamp() * 1000)}"

    def _track(
        self,
        user_id: str,
        endpoint: str,
        started: float,
        success: bool,
        input_tokens: int = 0,
        output_tokens: int = 0,
        error_code: Optional[str] = None,
        cached: bool = False,
        request_id: Optional[str] = None,
    ) -> None:
        elapsed = time.perf_counter() - started
        latency_ms = int(elapsed * 1000)
        metrics.record_request(
            endpoint,
            success,
            cached,
            elapsed,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=calculate_cost(TokenUsage(input_tokens, output_tokens), self.config.ai),
        )
        try:
            with span("usage.track", endpoint=endpoint, success=success):
                self.tracker.track(
                    user_id,
                    endpoint,
                    input_tokens,
                    output_tokens,
                    latency_ms,
                    success,
                    error_code=error_code,
                    cached=cached,
                    request_id=request_id,
                )
        except Exception:
            logger.warning(
                "Failed to track usage",
                exc_info=True,
                extra={"endpoint": endpoint, "request_id": request_id},
            )

    async def _run(self, endpoint: str, user_id: str, handler) -> OrchestratorResult:
        """Run a pipeline body, converting any exception into a result."""
        started = time.perf_counter()
        request_id = self._request_id(endpoint, user_id)
        try:
            return await handler(user_id, started, request_id)
        except HabitNexError as exc:
            logger.info(
                "Request rejected",
                extra={"endpoint": endpoint, "kind": exc.kind.value, "error": str(exc)},
            )
            self._track(user_id, endpoint, started, False, error_code=str(exc), request_id=request_id)
            return _error_result(exc)
        except Exception as exc:
            logger.exception("Error in %s", endpoint, extra={"request_id": request_id})
            self._track(user_id, endpoint, started, False, error_code=str(exc), request_id=request_id)
            return OrchestratorResult(500, {"success": False, "error": str(exc) or "Internal server error"})

    def _enforce_quota(self, user_id: str, endpoint: str) -> QuotaDecision:
        with span(f"{endpoint}.quota", user_id=user_id) as attrs:
            decision = self.quota.enforce(user_id, endpoint)
            attrs["remaining_requests"] = decision.remaining_requests
        return decision

    # Habit enhancement

    async def enhance_habit(self, user_id: Optional[str], payload: Any) -> OrchestratorResult:
        """Enhance a habit with benefits, difficulty and tips.

        Args:
            user_id: Authenticated caller, or None
            payload: Decoded JSON body ``{habitName, category?, existingHabits?}``

        Returns:
            OrchestratorResult with ``{success, data, cached, cost, usage}`` on success
        """
        if not self.ai_enabled:
            return _error_result(HabitNexError(
                "AI features are not available. Configure an API key to enable them.",
                ErrorKind.SERVICE_UNAVAILABLE,
            ))
        if not user_id:
            return _error_result(HabitNexError("Authentication required", ErrorKind.AUTHENTICATION_REQUIRED))

        async def handler(uid: str, started: float, request_id: str) -> OrchestratorResult:
            with span("enhance-habit.validate"):
                request = parse_request(EnhanceHabitRequest, payload, "Habit name is required")

            decision = self._enforce_quota(uid, ENHANCE_HABIT)

            if self._rng() < self.config.cache.cleanup_probability:
                self.cache.cleanup()

            key = fingerprint(request.habitName)
            with span("enhance-habit.cache_lookup", cache_key=key) as attrs:
                cached = self.cache.get(key)
                attrs["hit"] = cached is not None
                metrics.record_cache_lookup(ENHANCE_HABIT, cached is not None)

            if cached is not None:
                self._track(uid, ENHANCE_HABIT, started, True, cached=True, request_id=request_id)
                return OrchestratorResult(200, {
                    "success": True,
                    "data": cached,
                    "cached": True,
                    "cost": 0,
                    "usage": _usage(0, 0, decision.remaining_requests),
                })

            with span("enhance-habit.ai_call", habit=key) as attrs, \
                    metrics.ai_call_latency.labels(endpoint=ENHANCE_HABIT).time():
                completion = await self.ai_client.complete(
                    habit_enhance_prompt(request.habitName, request.category, request.existingHabits)
                )
                attrs["input_tokens"] = completion.input_tokens
                attrs["output_tokens"] = completion.output_tokens

            if not completion.text:
                raise UpstreamParseError("No response text received from AI")

            with span("enhance-habit.parse"):
                try:
                    enhancement = extract_json_object(completion.text)
                except UpstreamParseError:
                    logger.error("Failed to parse AI response", extra={"response_text": completion.text})
                    raise

            cost = calculate_cost(TokenUsage(completion.input_tokens, completion.output_tokens), self.config.ai)
            self.cache.set(key, enhancement, cost)
            self._track(
                uid,
                ENHANCE_HABIT,
                started,
                True,
                input_tokens=completion.input_tokens,
                output_tokens=completion.output_tokens,
                request_id=request_id,
            )
            logger.info(
                "Habit enhancement completed",
                extra={"habit": key, "cost": cost, "latency_ms": completion.latency_ms},
            )
            return OrchestratorResult(200, {
                "success": True,
                "data": enhancement,
                "cached": False,
                "cost": cost,
                "responseTime": completion.latency_ms,
                "usage": _usage(completion.input_tokens, completion.output_tokens, decision.remaining_requests),
            })

        return await self._run(ENHANCE_HABIT, user_id, handler)

    def enhance_habit_info(self) -> Dict[str, Any]:
        return {
            "api": "Habit Enhancement",
            "enabled": self.ai_enabled,
            "model": self.config.ai.model,
            "maxTokens": self.config.ai.max_tokens,
            "temperature": self.config.ai.temperature,
            "cache": {"size": self.cache.size(), "stats": self.cache.stats().to_dict()},
            "rateLimit": self._rate_limit_info(ENHANCE_HABIT),
        }

    # Mood analysis

    async def analyze_mood(self, user_id: Optional[str], payload: Any) -> OrchestratorResult:
        """Correlate mood with habit completion over a 7-90 day window.

        Works without AI: the statistical analysis is always returned, and AI
        insight text is added only when the model is available and the
        window holds enough data. A failed or unparseable model call falls
        back to default insight text.

        Args:
            user_id: Authenticated caller, or None
            payload: Decoded JSON body ``{startDate, endDate, userId?}``

        Returns:
            OrchestratorResult with ``{success, data, meta}`` on success
        """
        if not user_id:
            return _error_result(HabitNexError("Authentication required", ErrorKind.AUTHENTICATION_REQUIRED))

        async def handler(uid: str, started: float, request_id: str) -> OrchestratorResult:
            with span("mood-analysis.validate"):
                request = parse_request(MoodAnalysisRequest, payload, "startDate and endDate are required")
                validate_date_range(request.startDate, request.endDate)

            decision = self._enforce_quota(uid, MOOD_ANALYSIS)
            target_user = request.userId or uid

            with span("mood-analysis.statistics", target_user=target_user) as attrs:
                try:
                    analysis, points = perform_mood_analysis(
                        self.habit_repository, target_user, request.startDate, request.endDate
                    )
                except NoMoodDataError:
                    raise NoMoodDataError(
                        "No mood data found for the specified date range. "
                        "Please track your mood for at least 7 days before requesting analysis."
                    )
                except Exception as exc:
                    logger.exception("Error performing mood analysis")
                    raise HabitNexError(
                        "Failed to analyze mood data. Please try again later.", ErrorKind.INTERNAL_ERROR
                    ) from exc
                attrs["days"] = len(points)

            data = {**analysis, **DEFAULT_MOOD_INSIGHTS}
            input_tokens = output_tokens = 0
            ai_cost = 0.0
            ai_used = False

            if self.ai_enabled and len(points) >= MIN_AI_MOOD_POINTS:
                trends = calculate_mood_trends(points)
                patterns = identify_mood_patterns(points)
                prompt = mood_pattern_analysis_prompt(
                    analysis["correlations"],
                    {
                        "highPerformanceDays": len(patterns.high_performance_days),
                        "lowPerformanceDays": len(patterns.low_performance_days),
                    },
                    {"moodTrend": trends["moodTrend"], "habitTrend": trends["habitTrend"]},
                    analysis["statistics"]["avgMoodScores"],
                    analysis["statistics"]["avgCompletionRate"],
                )
                try:
                    with span("mood-analysis.ai_call") as attrs, \
                            metrics.ai_call_latency.labels(endpoint=MOOD_ANALYSIS).time():
                        completion = await self.ai_client.complete(prompt)
                        attrs["input_tokens"] = completion.input_tokens
                        attrs["output_tokens"] = completion.output_tokens
                except Exception:
                    logger.exception("Error generating AI insights; returning statistics only")
                else:
                    input_tokens = completion.input_tokens
                    output_tokens = completion.output_tokens
                    ai_cost = calculate_cost(TokenUsage(input_tokens, output_tokens), self.config.ai)
                    ai_used = True
                    if completion.text:
                        try:
                            insight = extract_json_object(completion.text)
                        except UpstreamParseError:
                            logger.warning(
                                "Failed to parse AI mood insight; using defaults",
                                extra={"response_text": completion.text},
                            )
                        else:
                            data.update({
                                "aiInsight": insight.get("insight", DEFAULT_MOOD_INSIGHTS["aiInsight"]),
                                "primaryFactor": insight.get("primaryFactor", DEFAULT_MOOD_INSIGHTS["primaryFactor"]),
                                "aiRecommendation": insight.get(
                                    "recommendation", DEFAULT_MOOD_INSIGHTS["aiRecommendation"]
                                ),
                                "encouragement": insight.get("encouragement", DEFAULT_MOOD_INSIGHTS["encouragement"]),
                            })
            elif not self.ai_enabled:
                logger.info("AI not enabled, returning statistical analysis only")

            self._track(
                uid,
                MOOD_ANALYSIS,
                started,
                True,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                request_id=request_id,
            )
            return OrchestratorResult(200, {
                "success": True,
                "data": data,
                "meta": {
                    "dateRange": {"startDate": request.startDate, "endDate": request.endDate},
                    "daysAnalyzed": analysis["statistics"]["totalDaysAnalyzed"],
                    "hasAiInsights": ai_used,
                    "generatedAt": self._clock().isoformat(),
                    "cost": ai_cost,
                    "usage": _usage(input_tokens, output_tokens, decision.remaining_requests),
                },
            })

        return await self._run(MOOD_ANALYSIS, user_id, handler)

    def mood_analysis_info(self) -> Dict[str, Any]:
        return {
            "api": "Mood Pattern Analysis",
            "description": "Analyzes correlations between mood dimensions and habit completion patterns",
            "enabled": True,
            "aiInsights": self.ai_enabled,
            "model": self.config.ai.model,
            "requirements": {
                "minimumDays": MIN_ANALYSIS_DAYS,
                "maximumDays": MAX_ANALYSIS_DAYS,
                "dateFormat": "YYYY-MM-DD",
            },
            "rateLimit": self._rate_limit_info(MOOD_ANALYSIS),
            "parameters": {"required": ["startDate", "endDate"], "optional": ["userId"]},
        }

    # Quick insight

    async def quick_insight(self, user_id: Optional[str], payload: Any) -> OrchestratorResult:
        """One-sentence motivational insight for a habit's progress.

        Cached insights are served first, then canned templates, then the
        model. Without AI a generic fallback message is returned.
        """
        if not user_id:
            return _error_result(HabitNexError("Authentication required", ErrorKind.AUTHENTICATION_REQUIRED))

        async def handler(uid: str, started: float, request_id: str) -> OrchestratorResult:
            request = parse_request(
                QuickInsightRequest, payload, "habitName, streak, and completionRate are required"
            )
            decision = self._enforce_quota(uid, QUICK_INSIGHT)

            name, streak, rate = request.habitName, request.streak, request.completionRate
            key = insight_cache_key(name, streak, rate)

            cached = self.insight_cache.get(key)
            metrics.record_cache_lookup(QUICK_INSIGHT, cached is not None)
            if cached is not None:
                self._track(uid, QUICK_INSIGHT, started, True, cached=True, request_id=request_id)
                return OrchestratorResult(200, {"success": True, "insight": cached, "cached": True, "cost": 0})

            message = template_insight(name, streak, rate)
            method = "template"
            if message is None and not self.ai_enabled:
                message = fallback_insight(name)
                method = "fallback"

            if message is not None:
                self.insight_cache.set(key, message, 0)
                self._track(uid, QUICK_INSIGHT, started, True, request_id=request_id)
                return OrchestratorResult(200, {
                    "success": True,
                    "insight": message,
                    "cached": False,
                    "cost": 0,
                    "method": method,
                })

            with span("quick-insight.ai_call") as attrs, \
                    metrics.ai_call_latency.labels(endpoint=QUICK_INSIGHT).time():
                completion = await self.ai_client.complete(
                    quick_insight_prompt(name, streak, rate), max_tokens=100, temperature=0.7
                )
                attrs["output_tokens"] = completion.output_tokens

            insight = completion.text.strip()
            if not insight:
                raise UpstreamParseError("No insight received from AI")

            cost = calculate_cost(TokenUsage(completion.input_tokens, completion.output_tokens), self.config.ai)
            self.insight_cache.set(key, insight, cost)
            self._track(
                uid,
                QUICK_INSIGHT,
                started,
                True,
                input_tokens=completion.input_tokens,
                output_tokens=completion.output_tokens,
                request_id=request_id,
            )
            return OrchestratorResult(200, {
                "success": True,
                "insight": insight,
                "cached": False,
                "cost": cost,
                "responseTime": completion.latency_ms,
                "method": "ai",
                "usage": _usage(completion.input_tokens, completion.output_tokens, decision.remaining_requests),
            })

        return await self._run(QUICK_INSIGHT, user_id, handler)

    # Habit recommendations

    async def recommend_habits(self, user_id: Optional[str], payload: Any) -> OrchestratorResult:
        """Suggest new habits that complement the caller's routine.

        An unparseable model reply yields an empty list rather than an error.
        """
        if not self.ai_enabled:
            return _error_result(HabitNexError(
                "AI features are not available. Configure an API key to enable them.",
                ErrorKind.SERVICE_UNAVAILABLE,
            ))
        if not user_id:
            return _error_result(HabitNexError("Authentication required", ErrorKind.AUTHENTICATION_REQUIRED))

        async def handler(uid: str, started: float, request_id: str) -> OrchestratorResult:
            request = parse_request(RecommendHabitsRequest, payload, "existingHabits must be an array")
            decision = self._enforce_quota(uid, RECOMMEND_HABITS)

            with span("recommend-habits.ai_call", existing=len(request.existingHabits)) as attrs, \
                    metrics.ai_call_latency.labels(endpoint=RECOMMEND_HABITS).time():
                completion = await self.ai_client.complete(
                    habit_recommendation_prompt(request.existingHabits, request.userGoals),
                    max_tokens=200,
                    temperature=0.9,
                    system=HABIT_RECOMMENDATION_SYSTEM,
                )
                attrs["output_tokens"] = completion.output_tokens

            try:
                parsed = extract_json_array(completion.text or "[]")
            except UpstreamParseError:
                logger.warning(
                    "Failed to parse habit recommendations",
                    extra={"response_text": completion.text},
                )
                parsed = []
            recommendations = [item.strip() for item in parsed if isinstance(item, str) and item.strip()]

            cost = calculate_cost(TokenUsage(completion.input_tokens, completion.output_tokens), self.config.ai)
            self._track(
                uid,
                RECOMMEND_HABITS,
                started,
                True,
                input_tokens=completion.input_tokens,
                output_tokens=completion.output_tokens,
                request_id=request_id,
            )
            return OrchestratorResult(200, {
                "success": True,
                "recommendations": recommendations,
                "count": len(recommendations),
                "cost": cost,
                "usage": _usage(completion.input_tokens, completion.output_tokens, decision.remaining_requests),
                "timestamp": self._clock().isoformat(),
            })

        return await self._run(RECOMMEND_HABITS, user_id, handler)

    # Reporting

    def _rate_limit_info(self, endpoint: str) -> Dict[str, Any]:
        return {
            "dailyLimit": self.quota.daily_limit(endpoint),
            "resetTime": self.quota.reset_time(endpoint).isoformat(),
        }

    def cache_stats(self) -> Dict[str, Any]:
        stats = self.cache.stats()
        return {
            "success": True,
            "cache": {
                "size": self.cache.size(),
                "staticEntries": len(COMMON_HABITS),
                "stats": stats.to_dict(),
            },
            "insightCache": {
                "size": self.insight_cache.size(),
                "stats": self.insight_cache.stats().to_dict(),
            },
            "rateLimits": {endpoint: self._rate_limit_info(endpoint) for endpoint in self.config.limits},
        }

    def usage_summary(self, user_id: str) -> Dict[str, Any]:
        """Today's usage and remaining allowance for one user."""
        summary = self.tracker.user_summary(user_id)
        return {
            "success": True,
            "userId": user_id,
            "today": summary["total"],
            "endpoints": {
                endpoint: {
                    **summary.get(endpoint, {}),
                    "dailyLimit": self.quota.daily_limit(endpoint),
                    "remainingRequests": self.quota.remaining(user_id, endpoint),
                }
                for endpoint in self.config.limits
            },
            "resetTime": self.quota.reset_time(ENHANCE_HABIT).isoformat(),
        }


def _ttl(config: AppConfig) -> timedelta:
    return timedelta(days=config.cache.ttl_days)
