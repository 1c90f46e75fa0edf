"""Comparator and analyzer collaborators over an OpenAI-compatible chat API."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Sequence

import httpx

from tribelife.domain.beacons.models import BeaconAnalysis, MatchResult
from tribelife.domain.common.errors import ExternalCallFailure
from tribelife.settings import settings

_LOG = logging.getLogger(__name__)

CATEGORIES = (
	"childcare",
	"education",
	"entertainment",
	"sports",
	"real_estate",
	"services",
	"social",
	"pets",
	"transportation",
	"health",
	"food",
	"other",
)

_ANALYZE_PROMPT = """You are a content moderator and NLP parser for TribeLife, a community platform.

Analyze this beacon (a short community request or offer):
"{raw_text}"

Respond with valid JSON only (no markdown, no explanation) in this exact shape:
{{
  "isAppropriate": boolean,
  "flagReason": string | null,
  "parsedIntent": string,
  "category": string,
  "intentType": "seeking" | "offering" | "both",
  "keywords": string[]
}}

Rules:
- isAppropriate = false if the beacon contains: hate speech, sexual content, illegal activity solicitation, personal contact info, spam/advertising links, or threatening language.
- flagReason = concise reason if isAppropriate is false, else null.
- parsedIntent = a clean, normalized 1-2 sentence description of the intent. Correct typos. Remove personal info.
- category = one of: {categories}.
- intentType = "seeking" (looking for something), "offering" (providing something), "both".
- keywords = 3-8 key terms that capture the essence for matching purposes."""

_COMPARE_PROMPT = """You are a semantic matching engine for a community app.

Determine if these two community beacons are a meaningful match (someone who could help the other or share mutual interest).

Beacon A: "{intent_a}"
Keywords A: {keywords_a}

Beacon B: "{intent_b}"
Keywords B: {keywords_b}

Respond with valid JSON only:
{{
  "score": number between 0 and 1,
  "reason": "one sentence explaining why or why not they match"
}}

A match means one person can meaningfully help or connect with the other, or they share a mutual interest worth connecting over."""


class BeaconComparator(Protocol):
	async def compare(
		self,
		intent_a: str,
		keywords_a: Sequence[str],
		intent_b: str,
		keywords_b: Sequence[str],
	) -> MatchResult:
		...


class BeaconAnalyzer(Protocol):
	async def analyze(self, raw_text: str) -> BeaconAnalysis:
		...


def parse_match_result(raw: str, *, threshold: float) -> MatchResult:
	"""Score the model reply; anything unparsable is a zero score."""
	try:
		data = json.loads(_strip_fences(raw))
		score = float(data["score"])
	except (ValueError, TypeError, KeyError):
		return MatchResult(score=0.0, reason="Unable to compare", is_match=False)
	score = min(1.0, max(0.0, score))
	reason = str(data.get("reason") or "")
	return MatchResult(score=score, reason=reason, is_match=score >= threshold)


def parse_analysis(raw: str, raw_text: str) -> BeaconAnalysis:
	"""Read the moderation reply; anything unparsable is treated as inappropriate."""
	try:
		data = json.loads(_strip_fences(raw))
		if not isinstance(data, dict) or not isinstance(data.get("isAppropriate"), bool):
			raise ValueError("missing isAppropriate")
	except ValueError:
		return BeaconAnalysis(
			is_appropriate=False,
			flag_reason="Unable to analyze beacon content",
			parsed_intent=raw_text,
			category="other",
			intent_type="seeking",
		)
	category = str(data.get("category") or "other")
	keywords = data.get("keywords")
	if not isinstance(keywords, list):
		keywords = []
	return BeaconAnalysis(
		is_appropriate=data["isAppropriate"],
		flag_reason=data.get("flagReason"),
		parsed_intent=str(data.get("parsedIntent") or raw_text),
		category=category if category in CATEGORIES else "other",
		intent_type=str(data.get("intentType") or "seeking"),
		keywords=tuple(str(item) for item in keywords if isinstance(item, (str, int, float))),
	)


def _strip_fences(raw: str) -> str:
	text = (raw or "").strip()
	if text.startswith("```"):
		text = text.strip("`")
		if text.startswith("json"):
			text = text[4:]
	return text.strip() or "{}"


@dataclass
class OpenAIChatClient:
	"""Single-prompt chat completion client used by the comparator and analyzer."""

	http: httpx.AsyncClient
	api_key: Optional[str] = field(default_factory=lambda: settings.openai_api_key)
	base_url: str = field(default_factory=lambda: settings.openai_base_url)
	model: str = field(default_factory=lambda: settings.openai_model)
	timeout: float = field(default_factory=lambda: settings.llm_timeout_seconds)

	async def complete(self, prompt: str, *, max_tokens: int) -> str:
		if not self.api_key:
			raise ExternalCallFailure("llm", "llm_not_configured")
		body: Dict[str, Any] = {
			"model": self.model,
			"max_tokens": max_tokens,
			"messages": [{"role": "user", "content": prompt}],
		}
		try:
			response = await self.http.post(
				f"{self.base_url.rstrip('/')}/chat/completions",
				json=body,
				headers={"Authorization": f"Bearer {self.api_key}"},
				timeout=self.timeout,
			)
			response.raise_for_status()
			data = response.json()
		except (httpx.HTTPError, ValueError) as exc:
			raise ExternalCallFailure("llm", str(exc) or exc.__class__.__name__) from exc
		try:
			return data["choices"][0]["message"]["content"] or ""
		except (KeyError, IndexError, TypeError):
			return ""


class LLMBeaconComparator:
	def __init__(self, client: OpenAIChatClient, *, threshold: float | None = None) -> None:
		self._client = client
		self._threshold = settings.match_threshold if threshold is None else threshold

	async def compare(
		self,
		intent_a: str,
		keywords_a: Sequence[str],
		intent_b: str,
		keywords_b: Sequence[str],
	) -> MatchResult:
		prompt = _COMPARE_PROMPT.format(
			intent_a=intent_a,
			keywords_a=", ".join(keywords_a),
			intent_b=intent_b,
			keywords_b=", ".join(keywords_b),
		)
		raw = await self._client.complete(prompt, max_tokens=256)
		return parse_match_result(raw, threshold=self._threshold)


class LLMBeaconAnalyzer:
	def __init__(self, client: OpenAIChatClient) -> None:
		self._client = client

	async def analyze(self, raw_text: str) -> BeaconAnalysis:
		prompt = _ANALYZE_PROMPT.format(raw_text=raw_text, categories=", ".join(CATEGORIES))
		raw = await self._client.complete(prompt, max_tokens=512)
		analysis = parse_analysis(raw, raw_text)
		if not analysis.is_appropriate:
			_LOG.info("beacon.analysis_flagged", extra={"reason": analysis.flag_reason})
		return analysis
