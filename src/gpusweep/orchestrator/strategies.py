# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Candidate walking strategies for the offload sweep."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

from gpusweep.common.enums import SweepMode
from gpusweep.orchestrator.models import CandidateResult

logger = logging.getLogger(__name__)

__all__ = [
    "EarlyStopStrategy",
    "ExhaustiveStrategy",
    "SweepStrategy",
    "create_strategy",
]


class SweepStrategy(ABC):
    """Base class for sweep strategies.

    Candidates are always evaluated strictly in the order supplied. A strategy
    decides:
    1. Whether to evaluate another candidate, given the results so far
    2. Which evaluated candidate is the best
    """

    mode: SweepMode

    def validate_candidates(self, candidates: Sequence[int]) -> None:
        """Reject candidate lists the sweep cannot walk.

        Raises:
            ValueError: If the list is empty or has negative values
        """
        if not candidates:
            raise ValueError("Candidate list must not be empty.")
        negatives = [c for c in candidates if c < 0]
        if negatives:
            raise ValueError(f"Candidate values must be non-negative, got: {negatives}")

    @abstractmethod
    def should_continue(self, results: list[CandidateResult]) -> bool:
        """Decide whether to evaluate the next candidate.

        Args:
            results: Candidates evaluated so far, in order

        Returns:
            True to evaluate another candidate, False to stop
        """
        pass

    def select_best(self, results: list[CandidateResult]) -> CandidateResult | None:
        """Highest-throughput successful candidate; the earlier one wins ties."""
        best = None
        for result in results:
            if not result.succeeded:
                continue
            if best is None or result.tokens_per_second > best.tokens_per_second:
                best = result
        return best


class EarlyStopStrategy(SweepStrategy):
    """Stop at the first candidate with positive throughput."""

    mode = SweepMode.EARLY_STOP

    def should_continue(self, results: list[CandidateResult]) -> bool:
        return not any(r.succeeded for r in results)


class ExhaustiveStrategy(SweepStrategy):
    """Evaluate every candidate and keep the global maximum."""

    mode = SweepMode.EXHAUSTIVE

    def should_continue(self, results: list[CandidateResult]) -> bool:
        return True


def create_strategy(mode: SweepMode) -> SweepStrategy:
    if mode == SweepMode.EXHAUSTIVE:
        return ExhaustiveStrategy()
    return EarlyStopStrategy()
