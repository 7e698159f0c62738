"""
Expense Tracker Backend — Google Gemini Service Implementation
===============================================================

What:  AIService backed by Google Gemini: categorization, receipt text
       extraction, receipt photo transcription and per-expense analysis.
How:   Every call goes through _generate(), which checks the circuit breaker,
       retries transient failures with tenacity (exponential backoff + jitter)
       and converts any provider failure into UpstreamServiceError (503).
Who:   A single instance is created at import and stored on app.state so the
       circuit breaker state is shared by all requests.

Enablement:
    AI_ENABLED=false (default) or a missing GEMINI_API_KEY leaves the
    service unavailable. No SDK configuration or network call happens then.
"""

import json
import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Sequence

import google.generativeai as genai
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from expense_tracker.config import settings
from expense_tracker.exceptions import CircuitBreakerOpenError, UpstreamServiceError
from expense_tracker.middleware.request_id import request_id_var
from expense_tracker.services.ai_base import AIService
from expense_tracker.services.receipt_parser import parse_receipt_text

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    CLOSED → (threshold consecutive failures) → OPEN
    OPEN → (recovery_timeout elapsed) → HALF_OPEN, one trial call allowed
    HALF_OPEN → success → CLOSED, failure → OPEN

    Not shared across processes; each worker trips independently.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.opened_at: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Raises:
            CircuitBreakerOpenError: OPEN and the recovery timeout has not elapsed
        """
        if self.state != self.OPEN:
            return True

        elapsed = time.time() - (self.opened_at or 0)
        if elapsed >= self.recovery_timeout:
            logger.info("Circuit breaker HALF_OPEN after %.1fs", elapsed)
            self.state = self.HALF_OPEN
            return True

        raise CircuitBreakerOpenError(recovery_time=max(1, int(self.recovery_timeout - elapsed)))

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker CLOSED (AI service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.opened_at = None

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.state == self.HALF_OPEN or self.failure_count >= self.failure_threshold:
            if self.state != self.OPEN:
                logger.warning(
                    "Circuit breaker OPEN after %d consecutive failures", self.failure_count
                )
            self.state = self.OPEN
            self.opened_at = time.time()


def parse_json_response(text: str) -> Dict[str, Any]:
    """Decode a JSON object from model output, tolerating ``` fences."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`")
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")
    return data


def match_category(suggestion: str, category_names: Sequence[str]) -> Optional[str]:
    wanted = suggestion.strip().lower()
    if not wanted:
        return None
    for name in category_names:
        lower = name.lower()
        if lower in wanted or wanted in lower:
            return name
    return None


# ══════════════════════════════════════════════════════════════════════════
# Gemini Service
# ══════════════════════════════════════════════════════════════════════════

class GeminiService(AIService):

    CATEGORIZE_PROMPT = """Categorize this expense.
Description: "{description}"
Amount: ${amount}

Available categories: {categories}

Return only the category name that best matches this expense."""

    RECEIPT_PROMPT = """Extract expense information from this receipt text:

{receipt_text}

Return only JSON with:
{{
  "merchant": "store name",
  "amount": total amount as a number,
  "date": "YYYY-MM-DD",
  "items": ["purchased items"],
  "category_suggestion": "suggested expense category"
}}"""

    ANALYSIS_PROMPT = """Analyze this expense and provide insights.

Current expense:
- Amount: ${amount}
- Description: {description}
- Category: {category}
- Date: {date}

Recent spending history:
{history}

Return only JSON with keys: pattern, comparison, suggestions (list),
category_feedback, impact_score (1-10)."""

    RECEIPT_VISION_PROMPT = """Transcribe all printed text on this receipt exactly as
it appears, one receipt line per output line. Return only the transcription."""

    def __init__(
        self,
        enabled: Optional[bool] = None,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
    ):
        self.enabled = settings.ai_enabled if enabled is None else enabled
        key = settings.gemini_api_key if api_key is None else api_key
        self.model_name = model_name or settings.gemini_model
        self.model = None

        if self.enabled and key:
            genai.configure(api_key=key)
            self.model = genai.GenerativeModel(self.model_name)
            logger.info("GeminiService initialized with model=%s", self.model_name)
        elif self.enabled:
            logger.warning("AI_ENABLED is set but GEMINI_API_KEY is empty; AI features disabled")
            self.enabled = False
        else:
            logger.info("AI features disabled (AI_ENABLED=false)")

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

    @property
    def is_available(self) -> bool:
        return self.enabled and self.model is not None

    # ── Public operations ─────────────────────────────────────────────────

    async def categorize_expense(
        self, description: str, amount: float, category_names: Sequence[str]
    ) -> Optional[str]:
        if not self.is_available or not category_names:
            return None
        prompt = self.CATEGORIZE_PROMPT.format(
            description=description,
            amount=amount,
            categories=", ".join(category_names),
        )
        try:
            suggestion = await self._generate(prompt, "categorize expense")
        except UpstreamServiceError as e:
            logger.warning("Categorization unavailable: %s", e.message)
            return None
        return match_category(suggestion, category_names)

    async def extract_receipt(self, receipt_text: str) -> Dict[str, Any]:
        if not self.is_available:
            return {**parse_receipt_text(receipt_text), "source": "rules"}
        try:
            raw = await self._generate(
                self.RECEIPT_PROMPT.format(receipt_text=receipt_text), "analyze receipt"
            )
            return {**parse_json_response(raw), "source": "ai"}
        except (UpstreamServiceError, ValueError) as e:
            logger.warning("Falling back to rule-based receipt parsing: %s", e)
            return {**parse_receipt_text(receipt_text), "source": "rules"}

    async def analyze_expense(
        self, expense: Dict[str, Any], history: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        if not self.is_available:
            raise UpstreamServiceError("AI service is not available")

        lines = [
            f"{h.get('date')}: ${h.get('amount')} - {h.get('description')} ({h.get('category')})"
            for h in history[-20:]
        ]
        prompt = self.ANALYSIS_PROMPT.format(
            amount=expense.get("amount"),
            description=expense.get("description"),
            category=expense.get("category", "Unknown"),
            date=expense.get("date"),
            history="\n".join(lines) or "(none)",
        )
        raw = await self._generate(prompt, "analyze expense")
        try:
            return parse_json_response(raw)
        except ValueError:
            return {
                "pattern": "Analysis generated",
                "comparison": raw[:200],
                "suggestions": ["Review spending in this category"],
                "category_feedback": "Category seems appropriate",
                "impact_score": 5,
            }

    async def read_receipt_image(self, image_path: str) -> str:
        if not self.is_available:
            raise UpstreamServiceError("AI service is not available")
        return await self._generate(
            self.RECEIPT_VISION_PROMPT, "read receipt image", image_path=image_path
        )

    async def health_check(self) -> str:
        if not self.is_available:
            return "disabled"
        if self.circuit_breaker.state == CircuitBreaker.OPEN:
            return "circuit_open"
        try:
            genai.list_models()
            return "available"
        except Exception as e:
            logger.warning("Gemini health check failed: %s", e)
            return "unavailable"

    # ── Call pipeline ─────────────────────────────────────────────────────

    async def _generate(
        self, prompt: str, operation: str, image_path: Optional[str] = None
    ) -> str:
        """
        Circuit breaker → retried call → success/failure bookkeeping.

        Raises:
            CircuitBreakerOpenError: breaker is open
            UpstreamServiceError: every attempt failed
        """
        request_id = request_id_var.get("") or uuid.uuid4().hex[:8]
        self.circuit_breaker.can_execute()

        try:
            text = await self._call_gemini_with_retry(prompt, request_id, image_path)
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error("[%s] Gemini %s failed: %s", request_id, operation, e)
            raise UpstreamServiceError(
                message=f"Failed to {operation}",
                details={"request_id": request_id, "error_type": type(e).__name__},
            )

        self.circuit_breaker.record_success()
        return text

    @retry(
        # The SDK raises assorted exception types for API errors
        retry=retry_if_exception_type(Exception),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _call_gemini_with_retry(
        self, prompt: str, request_id: str, image_path: Optional[str] = None
    ) -> str:
        start_time = time.perf_counter()
        parts: List[Any] = [prompt]
        if image_path:
            parts.append(genai.upload_file(path=image_path))

        response = await self.model.generate_content_async(
            parts, request_options={"timeout": 60}
        )
        text = response.text.strip() if response.text else ""

        logger.info(
            "[%s] Gemini call completed in %.0fms (%d chars)",
            request_id,
            (time.perf_counter() - start_time) * 1000,
            len(text),
        )
        return text


gemini_service = GeminiService()
