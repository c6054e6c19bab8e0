"""Sequential multi-provider insight generation with local fallback."""
import asyncio
from typing import Callable, Dict, List, NamedTuple, Optional, Sequence, Set, Tuple

from models import (
    AnalysisContext,
    AttemptOutcome,
    Candidate,
    Credential,
    Insight,
    MetricSummary,
    ProviderAttempt,
)
from llm.fallback import analyze_locally
from llm.parsing import parse_insight_text
from llm.prompts import build_insight_prompt
from llm.providers import InsightProvider, is_rate_limit_message
from exceptions import InvalidResponseError, ProviderError, QuotaExceededError
from logging_config import get_logger

logger = get_logger("llm.orchestrator")

FallbackAnalyzer = Callable[[Dict[str, MetricSummary], int, AnalysisContext], Insight]


class OrchestrationResult(NamedTuple):
    insight: Insight
    attempts: List[ProviderAttempt]


class InsightOrchestrator:
    """
    Walk an ordered chain of (provider, credential, model) candidates.

    Candidates are tried one at a time. A quota error retires the credential
    (its remaining models are skipped), any other provider failure moves on to
    the next model, and an unparseable response moves on to the next
    candidate. When the chain is exhausted the local analyzer produces the
    insight, so ``run`` only fails on cancellation.
    """

    def __init__(
        self,
        primary: InsightProvider,
        credentials: Sequence[Credential],
        models: Sequence[str],
        secondary: Optional[InsightProvider] = None,
        secondary_credential: Optional[Credential] = None,
        secondary_model: Optional[str] = None,
        timeout: float = 12.0,
        fallback: Optional[FallbackAnalyzer] = None
    ):
        """
        Initialize orchestrator.

        Args:
            primary: Provider tried first
            credentials: Primary provider keys, in the order to try them
            models: Primary provider models, fastest first
            secondary: Provider tried after every primary candidate
            secondary_credential: Key for the secondary provider
            secondary_model: Model for the secondary provider
            timeout: Per-attempt timeout in seconds
            fallback: Offline analyzer used when every candidate fails
        """
        self.primary = primary
        self.credentials = list(credentials)
        self.models = list(models)
        self.secondary = secondary
        self.secondary_credential = secondary_credential
        self.secondary_model = secondary_model
        self.timeout = timeout
        self.fallback = fallback or analyze_locally

    def enumerate_candidates(self) -> List[Candidate]:
        """Primary credentials x models in declared order, then the secondary."""
        candidates = [
            Candidate(
                provider=self.primary.name,
                credential_index=idx,
                credential=credential,
                model=model
            )
            for idx, credential in enumerate(self.credentials, start=1)
            for model in self.models
        ]

        if self.secondary and self.secondary_credential and self.secondary_model:
            candidates.append(Candidate(
                provider=self.secondary.name,
                credential_index=1,
                credential=self.secondary_credential,
                model=self.secondary_model
            ))

        return candidates

    def _provider_for(self, candidate: Candidate) -> InsightProvider:
        if self.secondary and candidate.provider == self.secondary.name and candidate.provider != self.primary.name:
            return self.secondary
        return self.primary

    async def attempt(
        self,
        candidate: Candidate,
        prompt: str,
        health_score: int
    ) -> Tuple[ProviderAttempt, Optional[Insight]]:
        """
        Make exactly one provider call and classify the outcome.

        Args:
            candidate: Provider, credential and model to use
            prompt: Prompt text
            health_score: Used to fill a missing score in the response

        Returns:
            (attempt record, insight or None)
        """
        provider = self._provider_for(candidate)

        def record(outcome: AttemptOutcome, detail: Optional[str] = None) -> ProviderAttempt:
            return ProviderAttempt(
                provider=candidate.provider,
                credential_index=candidate.credential_index,
                model=candidate.model,
                outcome=outcome,
                detail=detail
            )

        try:
            text = await asyncio.wait_for(
                provider.generate(
                    prompt,
                    candidate.credential.api_key.get_secret_value(),
                    candidate.model,
                    self.timeout
                ),
                timeout=self.timeout
            )
            insight = parse_insight_text(text, candidate.tag, health_score)

        except asyncio.TimeoutError:
            return record(AttemptOutcome.TRANSIENT_ERROR, f"timed out after {self.timeout}s"), None
        except QuotaExceededError as e:
            return record(AttemptOutcome.QUOTA_EXCEEDED, e.message), None
        except InvalidResponseError as e:
            return record(AttemptOutcome.INVALID_RESPONSE, e.message), None
        except ProviderError as e:
            if is_rate_limit_message(e.message):
                return record(AttemptOutcome.QUOTA_EXCEEDED, e.message), None
            return record(AttemptOutcome.TRANSIENT_ERROR, e.message), None
        except Exception as e:
            logger.exception(f"Unexpected error from {candidate.tag}")
            message = str(e) or type(e).__name__
            if is_rate_limit_message(message):
                return record(AttemptOutcome.QUOTA_EXCEEDED, message), None
            return record(AttemptOutcome.TRANSIENT_ERROR, message), None

        return record(AttemptOutcome.SUCCESS), insight

    async def run(
        self,
        summaries: Dict[str, MetricSummary],
        health_score: int,
        context: AnalysisContext
    ) -> OrchestrationResult:
        """
        Produce an insight, falling back to local analysis.

        Args:
            summaries: Per-metric summaries
            health_score: Health score of the latest reading
            context: Source name and sample count

        Returns:
            The insight and one attempt record per candidate considered
        """
        prompt = build_insight_prompt(summaries, context, health_score)
        attempts: List[ProviderAttempt] = []
        retired: Set[Tuple[str, int]] = set()

        for candidate in self.enumerate_candidates():
            key = (candidate.provider, candidate.credential_index)
            if key in retired:
                attempts.append(ProviderAttempt(
                    provider=candidate.provider,
                    credential_index=candidate.credential_index,
                    model=candidate.model,
                    outcome=AttemptOutcome.QUOTA_EXCEEDED,
                    detail="credential quota exhausted",
                    skipped=True
                ))
                continue

            result, insight = await self.attempt(candidate, prompt, health_score)
            attempts.append(result)
            logger.info(
                f"AI attempt provider={candidate.provider} key={candidate.credential_index} "
                f"model={candidate.model} outcome={result.outcome.value}"
            )

            if insight is not None:
                return OrchestrationResult(insight=insight, attempts=attempts)

            if result.outcome == AttemptOutcome.QUOTA_EXCEEDED:
                retired.add(key)
            if result.detail:
                logger.debug(f"{candidate.tag}: {result.detail}")

        if attempts:
            logger.warning(f"All {len(attempts)} AI candidates failed, using local analysis")
        else:
            logger.info("No AI providers configured, using local analysis")

        insight = self.fallback(summaries, health_score, context)
        return OrchestrationResult(insight=insight, attempts=attempts)

    async def analyze(
        self,
        summaries: Dict[str, MetricSummary],
        health_score: int,
        context: AnalysisContext
    ) -> Insight:
        """Like ``run`` but returns only the insight."""
        result = await self.run(summaries, health_score, context)
        return result.insight
