"""
Groq Text Intelligence Implementation
Lead scoring, email classification and reply drafting on Groq

Scoring and classification use JSON mode at low temperature; replies use a
conversational temperature. Every failure raises TextIntelligenceError so
callers can fall back.
"""
import json
import logging
from typing import Any, Dict, Optional

from groq import AsyncGroq
from pydantic import ValidationError

from outreach.domain.interfaces.text_intelligence import (
    ScoreResult,
    TextIntelligence,
    TextIntelligenceError,
)
from outreach.domain.models.inbound_email import (
    CanonicalEmail,
    EmailCategory,
    EmailClassification,
    EmailSentiment,
)
from outreach.domain.models.support_ticket import TicketPriority

logger = logging.getLogger(__name__)


class GroqTextIntelligence(TextIntelligence):
    """
    Groq-backed text intelligence.

    Recommended models:
    - llama-3.3-70b-versatile: best quality/speed balance
    - llama-3.1-8b-instant: fastest
    """

    def __init__(
        self,
        api_key: str,
        model: str = "llama-3.3-70b-versatile",
        company_name: str = "Commertize",
        client: Optional[AsyncGroq] = None,
    ):
        if not api_key and client is None:
            raise ValueError("Groq API key not configured")
        self._client = client or AsyncGroq(api_key=api_key)
        self._model = model
        self.company_name = company_name

    @property
    def name(self) -> str:
        return "groq"

    async def _complete(self, system_prompt: str, user_prompt: str, temperature: float,
                        max_tokens: int, json_mode: bool) -> str:
        kwargs: Dict[str, Any] = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except Exception as e:
            raise TextIntelligenceError(f"Groq completion failed: {e}") from e

        if not response.choices or not response.choices[0].message.content:
            raise TextIntelligenceError("Groq returned an empty completion")
        return response.choices[0].message.content

    async def _complete_json(self, system_prompt: str, user_prompt: str, max_tokens: int = 300) -> dict:
        content = await self._complete(system_prompt, user_prompt, 0.2, max_tokens, json_mode=True)
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise TextIntelligenceError(f"Groq returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise TextIntelligenceError("Groq returned a non-object JSON value")
        return data

    async def score(self, features: Dict[str, Any]) -> ScoreResult:
        system_prompt = (
            f"You score sales leads for {self.company_name}, a commercial real estate tokenization "
            "platform. Respond with JSON: {\"score\": <integer 0-100>, \"reasoning\": \"<one sentence>\"}."
        )
        user_prompt = f"Lead features:\n{json.dumps(features, default=str, indent=2)}"
        data = await self._complete_json(system_prompt, user_prompt, max_tokens=150)

        try:
            return ScoreResult(
                score=int(data.get("score")),
                reasoning=str(data.get("reasoning", "")),
                source=self.name,
            )
        except (TypeError, ValueError, ValidationError) as e:
            raise TextIntelligenceError(f"Unusable score from Groq: {data!r}") from e

    async def classify(self, email: CanonicalEmail) -> EmailClassification:
        system_prompt = (
            f"You triage customer support email for {self.company_name}, a commercial real estate "
            "tokenization platform. Respond with JSON: "
            "{\"category\": \"investment_inquiry|property_question|technical_support|general_support|"
            "partnership|complaint|feature_request\", \"sentiment\": \"positive|neutral|negative|urgent\", "
            "\"priority\": \"low|medium|high|urgent\", \"topics\": [\"...\"], \"follow_up_actions\": [\"...\"]}"
        )
        user_prompt = f"From: {email.from_address}\nSubject: {email.subject}\nBody:\n{email.body}"
        data = await self._complete_json(system_prompt, user_prompt)

        try:
            return EmailClassification(
                category=EmailCategory(data.get("category", EmailCategory.GENERAL_SUPPORT.value)),
                priority=TicketPriority(data.get("priority", TicketPriority.MEDIUM.value)),
                sentiment=EmailSentiment(data.get("sentiment", EmailSentiment.NEUTRAL.value)),
                topics=[str(t) for t in data.get("topics") or []],
                follow_up_actions=[str(a) for a in data.get("follow_up_actions") or []],
            )
        except (TypeError, ValueError) as e:
            raise TextIntelligenceError(f"Unusable classification from Groq: {data!r}") from e

    async def generate_reply(self, email: CanonicalEmail, classification: EmailClassification) -> str:
        system_prompt = (
            f"You write replies for the {self.company_name} support team. {self.company_name} is a "
            "commercial real estate tokenization platform offering fractional ownership. Write a "
            "professional, friendly reply of 80-200 words that acknowledges the specific inquiry and "
            "gives next steps. Never promise or imply guaranteed returns, profits or income. "
            "Do not include a greeting line, a signature or an unsubscribe notice."
        )
        user_prompt = (
            f"Subject: {email.subject}\nBody:\n{email.body}\n\n"
            f"Category: {classification.category.value}\n"
            f"Sentiment: {classification.sentiment.value}\n"
            f"Priority: {classification.priority.value}"
        )
        reply = await self._complete(system_prompt, user_prompt, 0.7, 500, json_mode=False)
        return reply.strip()
