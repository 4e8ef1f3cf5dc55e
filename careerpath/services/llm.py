"""Anthropic-backed career scoring with retries, a TTL cache and error mapping."""

import json
import threading
import time
from dataclasses import dataclass, field

import anthropic
import structlog
from anthropic import Anthropic

from careerpath.core.config import get_settings
from careerpath.core.errors import AppError
from careerpath.schemas.catalog import Career
from careerpath.schemas.profile import StudentProfileIn
from careerpath.services.prompts import build_scoring_prompt
from careerpath.services.scoring import clamp, is_career_match

logger = structlog.get_logger()

RETRYABLE_ERRORS = (
    anthropic.RateLimitError,
    anthropic.APIConnectionError,
    anthropic.InternalServerError,
)


@dataclass
class LLMScore:
    career_id: str
    match_score: int
    reasoning: str = ""
    nep_alignment: str = ""


@dataclass
class LLMResult:
    model: str
    scores: dict[str, LLMScore] = field(default_factory=dict)
    cached: bool = False


def extract_json(text: str) -> dict:
    if "```json" in text:
        text = text.split("```json")[1].split("```")[0]
    elif "```" in text:
        text = text.split("```")[1].split("```")[0]
    return json.loads(text.strip())


def response_text(response) -> str:
    try:
        return response.content[0].text
    except (IndexError, AttributeError) as e:
        raise AppError(
            "AI response had no text content",
            status_code=502,
            code="AI_PARSE_ERROR",
        ) from e


def parse_scores(text: str, careers: list[Career]) -> dict[str, LLMScore]:
    """Parse the model's JSON reply into scores keyed by catalog career id.

    Unknown ids are matched to a catalog career by title; anything that still
    does not resolve is dropped.
    """
    try:
        payload = extract_json(text)
    except (json.JSONDecodeError, IndexError) as e:
        raise AppError(
            "AI response was not valid JSON",
            status_code=502,
            code="AI_PARSE_ERROR",
        ) from e

    items = payload.get("recommendations") if isinstance(payload, dict) else None
    if not isinstance(items, list):
        raise AppError(
            "AI response is missing the recommendations list",
            status_code=502,
            code="AI_PARSE_ERROR",
        )

    by_id = {c.id: c for c in careers}
    scores: dict[str, LLMScore] = {}
    for item in items:
        if not isinstance(item, dict):
            continue
        career_id = str(item.get("career_id") or item.get("id") or "")
        if career_id not in by_id:
            title = str(item.get("title") or career_id.replace("-", " "))
            resolved = next((c.id for c in careers if is_career_match(title, c.title)), None)
            if resolved is None:
                logger.info("llm_unknown_career_dropped", career_id=career_id)
                continue
            career_id = resolved

        try:
            raw_score = float(item.get("match_score"))
        except (TypeError, ValueError):
            continue
        if not 0 <= raw_score <= 100:
            logger.info("llm_score_out_of_range", career_id=career_id, score=raw_score)
            continue

        if career_id in scores:
            continue
        scores[career_id] = LLMScore(
            career_id=career_id,
            match_score=clamp(raw_score),
            reasoning=str(item.get("reasoning") or ""),
            nep_alignment=str(item.get("nep_alignment") or ""),
        )
    return scores


def map_api_error(exc: Exception) -> AppError:
    message = str(exc).lower()
    if "credit" in message or "quota" in message or "billing" in message:
        return AppError("AI service quota exceeded", status_code=503, code="AI_QUOTA_EXCEEDED")
    if isinstance(exc, anthropic.RateLimitError):
        return AppError("AI service rate limit exceeded", status_code=429, code="AI_RATE_LIMIT_EXCEEDED")
    if isinstance(exc, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return AppError("AI service is misconfigured", status_code=500, code="AI_CONFIG_ERROR")
    return AppError("AI service unavailable", status_code=502, code="AI_SERVICE_ERROR")


class LLMClient:
    def __init__(self, client: Anthropic | None = None, sleep=time.sleep, clock=time.monotonic):
        self.settings = get_settings()
        self._client = client
        self._sleep = sleep
        self._clock = clock
        # Shared by the worker threads that run score_careers
        self._cache_lock = threading.Lock()
        self._cache: dict[tuple, tuple[float, LLMResult]] = {}
        self._stats = {"requests": 0, "successes": 0, "failures": 0, "cache_hits": 0}

    @property
    def model(self) -> str:
        return self.settings.ANTHROPIC_MODEL

    @property
    def enabled(self) -> bool:
        return self.settings.LLM_ENABLED and (
            self._client is not None or bool(self.settings.ANTHROPIC_API_KEY)
        )

    @property
    def client(self) -> Anthropic:
        if self._client is None:
            self._client = Anthropic(
                api_key=self.settings.ANTHROPIC_API_KEY,
                timeout=self.settings.LLM_TIMEOUT_SECONDS,
                # _create retries with its own 2**n backoff schedule
                max_retries=0,
            )
        return self._client

    @staticmethod
    def cache_key(profile: StudentProfileIn, template: str) -> tuple:
        return (
            tuple(sorted(i.lower() for i in profile.academic_data.interests)),
            profile.personal_info.grade,
            profile.personal_info.board,
            profile.academic_data.performance,
            profile.family_income,
            profile.socioeconomic_data.location.lower(),
            template,
        )

    def _cached(self, key: tuple) -> LLMResult | None:
        with self._cache_lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            expires_at, result = entry
            if expires_at < self._clock():
                self._cache.pop(key, None)
                return None
            return result

    def _store(self, key: tuple, result: LLMResult) -> None:
        """Insert after dropping expired entries, then the oldest beyond the size cap."""
        now = self._clock()
        max_entries = max(1, self.settings.LLM_CACHE_MAX_ENTRIES)
        with self._cache_lock:
            for stale in [k for k, (expires_at, _) in self._cache.items() if expires_at < now]:
                del self._cache[stale]
            while len(self._cache) >= max_entries:
                self._cache.pop(next(iter(self._cache)))
            self._cache[key] = (now + self.settings.LLM_CACHE_TTL_SECONDS, result)

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()

    def _create(self, prompt: str):
        attempts = max(1, self.settings.LLM_MAX_RETRIES)
        for attempt in range(attempts):
            try:
                return self.client.messages.create(
                    model=self.model,
                    max_tokens=self.settings.LLM_MAX_TOKENS,
                    messages=[{"role": "user", "content": prompt}],
                )
            except RETRYABLE_ERRORS as e:
                if attempt == attempts - 1 or "credit" in str(e).lower():
                    raise map_api_error(e) from e
                delay = 2**attempt
                logger.warning(
                    "llm_call_retry",
                    attempt=attempt + 1,
                    delay_s=delay,
                    error=type(e).__name__,
                )
                self._sleep(delay)
            except anthropic.APIError as e:
                raise map_api_error(e) from e

    def score_careers(
        self,
        profile: StudentProfileIn,
        careers: list[Career],
        template: str = "nep2020",
    ) -> LLMResult:
        """Ask the model to score catalog careers for this profile.

        Blocking, like the underlying client; async callers run it in a worker
        thread. Raises AppError on any failure.
        """
        if not self.enabled:
            raise AppError("AI scoring is disabled", status_code=500, code="AI_CONFIG_ERROR")

        key = self.cache_key(profile, template)
        cached = self._cached(key)
        if cached is not None:
            self._stats["cache_hits"] += 1
            return LLMResult(model=cached.model, scores=cached.scores, cached=True)

        self._stats["requests"] += 1
        started = time.monotonic()
        try:
            response = self._create(build_scoring_prompt(profile, careers, template))
            text = response_text(response)
            scores = parse_scores(text, careers)
        except AppError as e:
            self._stats["failures"] += 1
            logger.error("llm_call_failed", code=e.code, template=template)
            raise

        self._stats["successes"] += 1
        result = LLMResult(model=self.model, scores=scores)
        self._store(key, result)
        logger.info(
            "llm_scores_received",
            template=template,
            scored=len(scores),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return result

    def stats(self) -> dict:
        return {
            **self._stats,
            "enabled": self.enabled,
            "model": self.model,
            "cache_size": len(self._cache),
        }
