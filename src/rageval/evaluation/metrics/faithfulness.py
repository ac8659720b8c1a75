"""
Faithfulness: is the answer backed by the retrieved context?

Method (after RAGAS faithfulness):
1. The judge lists the independently checkable factual claims in the answer
2. Each claim is checked against the context, all claims concurrently
3. Score = supported claims / total claims

An answer with no claims scores 1.0: there is nothing in it that the
context could contradict. If the claim list cannot be obtained at all,
the fallback score is used instead (0.0 by default) so a broken judge
never looks like a perfect answer.
"""

import asyncio

from rageval.evaluation.exceptions import MetricEvaluationFailure
from rageval.evaluation.judge import JudgeClient, as_string_list, extract_json_object
from rageval.evaluation.metrics.base import DEFAULT_FALLBACK, FallbackPolicy, call_judge
from rageval.evaluation.models import (
    ClaimVerdict,
    ClaimVerification,
    FaithfulnessAnalysis,
    MetricName,
    MetricResult,
)
from rageval.logging import get_logger

logger = get_logger(__name__, component="faithfulness")

METRIC = MetricName.FAITHFULNESS.value

EXTRACT_CLAIMS_PROMPT = """You are an expert at extracting factual claims from text.

## Task
Extract the verifiable factual claims made in the given answer.

## Rules
1. Only extract clear factual statements (no opinions or speculation)
2. Each claim must be verifiable on its own
3. Split compound sentences into separate claims
4. Skip sentences that do not contribute to answering the question

## Output format
Respond with JSON only:
{"claims": ["claim 1", "claim 2", ...]}

If there are no claims:
{"claims": []}"""

VERIFY_CLAIM_PROMPT = """You are an expert at checking whether a claim is supported by evidence.

## Task
Decide whether the given claim is supported by the context.

## Verdicts
- "supported": stated in the context or clearly inferable from it
- "not_supported": the context gives no basis for it
- "contradicted": the context clearly says otherwise

## Output format
Respond with JSON only:
{"verdict": "supported|not_supported|contradicted", "evidence": "supporting sentence or reason"}"""


def parse_claims(raw: str | None) -> list[str] | None:
    """Claims list from judge output, or None if the output is unusable."""
    data = extract_json_object(raw)
    if data is None:
        return None
    return as_string_list(data.get("claims"))


def parse_verdict(raw: str | None) -> ClaimVerification | None:
    """Verdict for a claim from judge output. The claim text is filled in by the caller."""
    data = extract_json_object(raw)
    if data is None:
        return None

    try:
        verdict = ClaimVerdict(str(data.get("verdict", "")).strip().lower())
    except ValueError:
        return None

    evidence = data.get("evidence")
    return ClaimVerification(
        claim="",
        verdict=verdict,
        evidence=str(evidence) if evidence else None,
    )


async def extract_claims(judge: JudgeClient, answer: str) -> list[str]:
    """
    Ask the judge for the answer's factual claims.

    Raises:
        MetricEvaluationFailure: If the judge fails or its output has no claims list
    """
    user_prompt = f"## Answer\n{answer}\n\n## Extracted claims (JSON)"
    raw = await call_judge(judge, METRIC, EXTRACT_CLAIMS_PROMPT, user_prompt, max_tokens=500)

    claims = parse_claims(raw)
    if claims is None:
        logger.warning("claims_unparsable", response=raw[:200])
        raise MetricEvaluationFailure(METRIC, "could not parse claims from judge output")
    return claims


async def verify_claim(judge: JudgeClient, claim: str, context: str) -> ClaimVerification:
    """Check one claim. Anything other than a clean "supported" counts against it."""
    user_prompt = (
        f"## Context\n{context}\n\n"
        f"## Claim to verify\n{claim}\n\n"
        f"## Verdict (JSON)"
    )

    try:
        raw = await call_judge(judge, METRIC, VERIFY_CLAIM_PROMPT, user_prompt, max_tokens=300)
    except MetricEvaluationFailure as e:
        logger.warning("claim_verification_failed", claim=claim[:80], error=e.reason)
        return ClaimVerification(claim=claim, verdict=ClaimVerdict.NOT_SUPPORTED)

    parsed = parse_verdict(raw)
    if parsed is None:
        logger.warning("claim_verdict_unparsable", claim=claim[:80], response=raw[:200])
        return ClaimVerification(claim=claim, verdict=ClaimVerdict.NOT_SUPPORTED)

    return ClaimVerification(claim=claim, verdict=parsed.verdict, evidence=parsed.evidence)


async def evaluate_faithfulness(
    judge: JudgeClient,
    answer: str,
    context: str,
    fallback: FallbackPolicy = DEFAULT_FALLBACK,
) -> MetricResult:
    """
    Score how much of the answer is grounded in the context.

    Args:
        judge: Judge model client
        answer: The generated answer
        context: Retrieved chunk contents, joined
        fallback: Score to use if claims cannot be extracted

    Returns:
        MetricResult with a FaithfulnessAnalysis
    """
    try:
        claims = await extract_claims(judge, answer)
    except MetricEvaluationFailure as e:
        logger.warning("faithfulness_fallback", reason=e.reason, score=fallback.faithfulness)
        return MetricResult(
            score=fallback.faithfulness,
            analysis=FaithfulnessAnalysis(fallback_used=True),
        )

    if not claims:
        return MetricResult(score=1.0, analysis=FaithfulnessAnalysis())

    verifications = await asyncio.gather(
        *(verify_claim(judge, claim, context) for claim in claims)
    )

    supported = sum(1 for v in verifications if v.supported_by_context)
    unsupported = [v.claim for v in verifications if not v.supported_by_context]

    logger.debug("faithfulness_scored", claims=len(claims), supported=supported)

    return MetricResult(
        score=supported / len(claims),
        analysis=FaithfulnessAnalysis(
            claims=list(verifications),
            unsupported_claims=unsupported,
        ),
    )
