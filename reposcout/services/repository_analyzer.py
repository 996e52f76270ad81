"""LLM-backed search-term derivation and repository relevance scoring.

Scoring is a two-stage chain with a fixed fallback order:

  1. **Reasoning** -- a free-text call asks the model to judge how well a
     repository matches a search term and to end with a score.
  2. **Structuring** -- a second, schema-constrained call turns that
     reasoning into a :class:`RelevanceAssessment`.
  3. **Regex fallback** -- if stage 2 fails or its output does not
     validate, the first float-looking token in the stage-1 text is used.
  4. **Zero** -- no numeric token at all means a score of 0.0.

Whatever tier produced it, the score is clamped to [0, 1] before it leaves
this module, because models are not trusted to respect ranges.  ``score``
and ``assess`` never raise.

Search-term derivation sits here too since it is the same kind of
upstream language-model step.
"""

from __future__ import annotations

import math
import re

from reposcout.interfaces.llm_provider import ILLMProvider
from reposcout.models.discovery import RelevanceAssessment, RepositoryCandidate
from reposcout.utils.errors import AnalysisDegradedError, GenerationError, LLMError
from reposcout.utils.logging import get_logger

# First float-looking token: "0.85", "12.5", or a bare ".7".
_SCORE_TOKEN_RE = re.compile(r"\d+\.\d+|\.\d+")

# Leading list markers models add despite instructions: "1.", "2)", "-", "*", "•".
_LIST_MARKER_RE = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s*")

_QUOTE_CHARS = "\"'`“”‘’"

_TERM_SYSTEM_PROMPT = (
    "You are an expert GitHub search query generator. "
    "You will be given a natural language prompt and must generate up to "
    "{max_terms} diverse and relevant GitHub repository search queries. "
    "Return only the queries, each on a new line, with no numbering or commentary."
)

_REASONING_SYSTEM_PROMPT = (
    "You are a senior engineer evaluating open-source repositories. "
    "Given a search term and a repository summary, explain in a few sentences "
    "how relevant the repository is to what the search term is looking for. "
    "Finish with a line of the form 'Score: X' where X is a number between "
    "0.0 (irrelevant) and 1.0 (exactly what was asked for)."
)

_STRUCTURING_SYSTEM_PROMPT = (
    "Convert the relevance evaluation below into the requested JSON structure. "
    "relevancy_score must be a number between 0.0 and 1.0 and must agree with "
    "the evaluation; reasoning is a one or two sentence summary of it."
)


def clamp_score(value: float) -> float:
    """Clamp *value* into [0, 1]; NaN maps to 0.0."""
    if math.isnan(value):
        return 0.0
    return min(1.0, max(0.0, value))


def extract_score_token(text: str) -> float | None:
    """Return the first float-looking token in *text*, or ``None``."""
    match = _SCORE_TOKEN_RE.search(text or "")
    if match is None:
        return None
    return float(match.group(0))


def parse_search_terms(raw: str, max_terms: int) -> list[str]:
    """Split an LLM reply into at most *max_terms* clean, unique queries."""
    terms: list[str] = []
    seen: set[str] = set()
    for line in (raw or "").splitlines():
        term = _LIST_MARKER_RE.sub("", line).strip().strip(_QUOTE_CHARS).strip()
        if not term:
            continue
        folded = term.casefold()
        if folded in seen:
            continue
        seen.add(folded)
        terms.append(term)
        if len(terms) >= max_terms:
            break
    return terms


def _describe_candidate(candidate: RepositoryCandidate) -> str:
    lines = [
        f"Repository: {candidate.full_name}",
        f"URL: {candidate.html_url}",
        f"Description: {candidate.description or '(none)'}",
        f"Primary language: {candidate.language or 'unknown'}",
        f"Stars: {candidate.stargazers_count}",
    ]
    if candidate.topics:
        lines.append(f"Topics: {', '.join(candidate.topics)}")
    return "\n".join(lines)


class RepositoryAnalyzer:
    """Derives search terms and scores candidates with a two-stage LLM chain.

    Parameters
    ----------
    reasoning_llm:
        Provider used for term generation and free-text relevance reasoning.
    structuring_llm:
        Provider used for the schema-constrained pass.  Defaults to
        *reasoning_llm*.
    """

    def __init__(
        self,
        reasoning_llm: ILLMProvider,
        structuring_llm: ILLMProvider | None = None,
    ) -> None:
        self._reasoning_llm = reasoning_llm
        self._structuring_llm = structuring_llm or reasoning_llm
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Search-term derivation
    # ------------------------------------------------------------------

    async def generate_search_terms(self, prompt: str, max_terms: int = 5) -> list[str]:
        """Ask the reasoning model for up to *max_terms* GitHub search queries.

        Raises
        ------
        GenerationError
            If the model call fails or yields no usable terms.
        """
        try:
            raw = await self._reasoning_llm.complete(
                system_prompt=_TERM_SYSTEM_PROMPT.format(max_terms=max_terms),
                user_prompt=prompt,
                temperature=0.4,
                max_tokens=300,
            )
        except LLMError as exc:
            raise GenerationError(
                message=f"Search term generation failed: {exc.message}",
                provider_name=exc.provider_name,
            ) from exc

        terms = parse_search_terms(raw, max_terms)
        if not terms:
            raise GenerationError(
                message="Model returned no usable search terms",
                provider_name=self._reasoning_llm.get_provider_name(),
            )
        self._logger.info("search_terms_generated", count=len(terms), terms=terms)
        return terms

    # ------------------------------------------------------------------
    # Relevance scoring
    # ------------------------------------------------------------------

    async def score(self, candidate: RepositoryCandidate, search_term: str) -> float:
        """Return the relevance of *candidate* to *search_term* in [0, 1]."""
        relevancy_score, _ = await self.assess(candidate, search_term)
        return relevancy_score

    async def assess(
        self,
        candidate: RepositoryCandidate,
        search_term: str,
    ) -> tuple[float, str]:
        """Return ``(score, reasoning)`` for *candidate*; never raises."""
        user_prompt = f"Search term: {search_term}\n\n{_describe_candidate(candidate)}"

        try:
            reasoning_text = await self._reasoning_llm.complete(
                system_prompt=_REASONING_SYSTEM_PROMPT,
                user_prompt=user_prompt,
                temperature=0.2,
                max_tokens=600,
            )
        except Exception as exc:  # noqa: BLE001 — any reasoning failure scores zero
            self._logger.warning(
                "relevance_reasoning_failed",
                candidate=candidate.key,
                search_term=search_term,
                error=str(exc),
            )
            return 0.0, ""

        try:
            assessment = await self._structuring_llm.complete_structured(
                system_prompt=_STRUCTURING_SYSTEM_PROMPT,
                user_prompt=(
                    f"{user_prompt}\n\nEvaluation:\n{reasoning_text}"
                ),
                schema=RelevanceAssessment,
            )
            return clamp_score(float(assessment.relevancy_score)), assessment.reasoning
        except Exception as exc:  # noqa: BLE001 — degrade to text parsing
            degraded = AnalysisDegradedError(
                message=f"Structuring failed for {candidate.key}: {exc}",
                provider_name=self._structuring_llm.get_provider_name(),
            )
            self._logger.warning(
                "analysis_degraded",
                candidate=candidate.key,
                search_term=search_term,
                error=str(degraded),
            )

        token = extract_score_token(reasoning_text)
        if token is None:
            self._logger.info("score_fallback_zero", candidate=candidate.key)
            return 0.0, reasoning_text.strip()
        return clamp_score(token), reasoning_text.strip()
