"""Pair enumeration for pairwise requirement comparison.

Yields every unordered pair (i, j), i < j, of the first ``max_requirements``
inputs exactly once, in row-major order. Pairs where either text is shorter
than the minimum length are still yielded (so progress accounting sees
them) but flagged as skipped.
"""

from collections.abc import Iterator, Sequence
from dataclasses import dataclass

from reqcheck.models.analysis import RequirementText

DEFAULT_MAX_REQUIREMENTS = 100
MIN_REQUIREMENT_LENGTH = 10


@dataclass(frozen=True)
class ComparisonPair:
    """An unordered pair of input positions, normalized so that i < j."""

    i: int
    j: int
    requirement_a: RequirementText
    requirement_b: RequirementText
    skipped: bool = False

    @property
    def pair_key(self) -> tuple[int, int]:
        return (self.i, self.j)


def total_pairs(count: int) -> int:
    """Number of unordered pairs among ``count`` items."""
    return count * (count - 1) // 2


class PairEnumerator:
    """Generate deduplicated comparison pairs for one analysis run.

    Example:
        >>> enumerator = PairEnumerator(requirements, max_requirements=100)
        >>> enumerator.total_pairs
        1
        >>> [p.pair_key for p in enumerator]
        [(0, 1)]
    """

    def __init__(
        self,
        requirements: Sequence[RequirementText],
        max_requirements: int = DEFAULT_MAX_REQUIREMENTS,
        min_length: int = MIN_REQUIREMENT_LENGTH,
    ) -> None:
        self.max_requirements = max_requirements
        self.min_length = min_length
        self.requirements = list(requirements[:max_requirements])
        self.excluded_count = max(0, len(requirements) - max_requirements)

    @property
    def total_pairs(self) -> int:
        return total_pairs(len(self.requirements))

    def is_too_short(self, requirement: RequirementText) -> bool:
        return len(requirement.text) < self.min_length

    def __iter__(self) -> Iterator[ComparisonPair]:
        count = len(self.requirements)
        for i in range(count):
            req_a = self.requirements[i]
            a_short = self.is_too_short(req_a)
            for j in range(i + 1, count):
                req_b = self.requirements[j]
                yield ComparisonPair(
                    i=i,
                    j=j,
                    requirement_a=req_a,
                    requirement_b=req_b,
                    skipped=a_short or self.is_too_short(req_b),
                )
