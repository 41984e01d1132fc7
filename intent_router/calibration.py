"""
Threshold calibration for Intent Router.

Scores a set of sample queries and picks the complexity-score cut-off
that sends a target share of them to the stronger side of the split.
Useful when tuning tier bands or the confidence threshold against real
traffic.
"""

import logging
import statistics
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .scorer import ComplexityScorer

_log = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.5

SAMPLE_QUERIES: Dict[str, List[str]] = {
    "simple_question": [
        "What time is it?",
        "Hi there!",
        "Thanks!",
        "What is the capital of France?",
        "Hello",
        "Ok",
        "How are you?",
        "What's 2+2?",
    ],
    "code_generation": [
        "Write a Python function to sort a list of dictionaries by a specific key",
        "Create a React component that displays a paginated table with sorting",
        "Implement a binary search tree in TypeScript with insert, delete, and search",
        "Write a SQL query to find the top 10 customers by total purchase amount",
        "Implement a rate limiter using the token bucket algorithm in Go",
    ],
    "reasoning": [
        "Explain the trade-offs between microservices and monolithic architecture",
        "Compare SQL and NoSQL databases for a real-time analytics system",
        "How would you design a system to handle 1 million concurrent users?",
        "Analyze the pros and cons of different authentication strategies for a mobile app",
    ],
    "creative_writing": [
        "Write a short story about a robot learning to feel emotions",
        "Create a catchy slogan for an eco-friendly water bottle company",
        "Write a compelling blog post introduction about the future of AI",
    ],
    "debugging": [
        "Fix this segfault in my C program",
        "My Python script crashes with a traceback about a null pointer",
        "Debug this race condition in my Go worker pool",
    ],
}


@dataclass(frozen=True)
class ScoreDistribution:
    min: float
    max: float
    mean: float
    median: float
    p25: float
    p75: float


@dataclass(frozen=True)
class CalibrationResult:
    """Threshold chosen for a target share, with the score distribution."""
    threshold: float
    target_percentage: float
    actual_percentage: float
    sample_size: int
    distribution: ScoreDistribution
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "threshold": self.threshold,
            "target_percentage": self.target_percentage,
            "actual_percentage": self.actual_percentage,
            "sample_size": self.sample_size,
            "distribution": {
                "min": self.distribution.min,
                "max": self.distribution.max,
                "mean": self.distribution.mean,
                "median": self.distribution.median,
                "p25": self.distribution.p25,
                "p75": self.distribution.p75,
            },
            "recommendations": list(self.recommendations),
        }


def calibrate_threshold(
    scorer: ComplexityScorer,
    samples: Sequence[str],
    target_percentage: float,
) -> CalibrationResult:
    """Find the score threshold that routes *target_percentage* of
    *samples* at or above it.

    Args:
        scorer: Scorer used to score every sample.
        samples: Sample request texts.
        target_percentage: Desired share (0–100) scoring at or above the
            threshold.

    Raises:
        ValueError: No samples, or a target outside 0–100.
    """
    if not samples:
        raise ValueError("Sample queries required for calibration")
    if not (0.0 <= target_percentage <= 100.0):
        raise ValueError(f"target_percentage must be 0–100, got {target_percentage}")

    scores = [scorer.score(text).score for text in samples]
    n = len(scores)

    descending = sorted(scores, reverse=True)
    index = min(int(n * target_percentage / 100), n - 1)
    threshold = descending[index]

    above = sum(1 for s in scores if s >= threshold)
    ascending = sorted(scores)
    distribution = ScoreDistribution(
        min=ascending[0],
        max=ascending[-1],
        mean=round(statistics.mean(scores), 4),
        median=ascending[n // 2],
        p25=ascending[int(n * 0.25)],
        p75=ascending[int(n * 0.75)],
    )
    _log.debug(
        "Calibrated threshold %.3f for target %.1f%% over %d samples",
        threshold, target_percentage, n,
    )
    return CalibrationResult(
        threshold=threshold,
        target_percentage=target_percentage,
        actual_percentage=above / n * 100,
        sample_size=n,
        distribution=distribution,
    )


def generate_calibration_report(
    scorer: ComplexityScorer,
    queries: Optional[Sequence[str]] = None,
    target_percentage: float = 50.0,
) -> Dict[str, CalibrationResult]:
    """Calibrate over all samples and per sample category.

    Returns:
        ``{"overall": ..., <category>: ...}``; the overall result carries
        tuning recommendations.
    """
    all_queries = list(queries) if queries else [
        q for group in SAMPLE_QUERIES.values() for q in group
    ]
    overall = calibrate_threshold(scorer, all_queries, target_percentage)

    recommendations = []
    dist = overall.distribution
    if dist.mean > 0.6:
        recommendations.append(
            "High average score: traffic is complex, consider widening the lower tiers."
        )
    elif dist.mean < 0.2:
        recommendations.append(
            "Low average score: most traffic already lands on the cheapest tier."
        )
    if dist.p75 - dist.p25 > 0.4:
        recommendations.append(
            "High score spread: consider a five-tier scheme for finer routing."
        )

    report = {
        "overall": CalibrationResult(
            threshold=overall.threshold,
            target_percentage=overall.target_percentage,
            actual_percentage=overall.actual_percentage,
            sample_size=overall.sample_size,
            distribution=overall.distribution,
            recommendations=recommendations,
        )
    }
    if not queries:
        for category, samples in SAMPLE_QUERIES.items():
            report[category] = calibrate_threshold(scorer, samples, target_percentage)
    return report
