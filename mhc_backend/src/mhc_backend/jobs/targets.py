"""目标选择

按固定的分组优先级合并候选人员，去重并受单周期上限约束，剩余名额由默认池补足。
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from ..models.person import ROLE_UNKNOWN

logger = logging.getLogger("mhc.jobs.targets")

SEGMENT_ORDER = (
    "watchlist",
    "following",
    "followers",
    "banned",
    "live",
    "doms",
    "friends",
    "subs",
    "tipped_me",
    "tipped_by_me",
)


@dataclass(frozen=True)
class TargetEntity:
    id: int
    username: str
    role: str = ROLE_UNKNOWN
    rid: Optional[int] = None
    did: Optional[int] = None


class SegmentProvider(ABC):
    @abstractmethod
    async def list_candidates(
        self, limit: int, exclude_ids: frozenset[int]
    ) -> List[TargetEntity]:
        """返回至多 limit 个候选，已选中的 exclude_ids 应被排除"""
        raise NotImplementedError


@dataclass(frozen=True)
class PriorityPolicy:
    segments: Mapping[str, bool] = field(default_factory=dict)
    max_per_run: int = 100
    batch_size: int = 5

    def __post_init__(self):
        if self.max_per_run < 1:
            raise ValueError("max_per_run must be >= 1")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        unknown = set(self.segments) - set(SEGMENT_ORDER)
        if unknown:
            raise ValueError(f"unknown segments: {sorted(unknown)}")

    def enabled_segments(self) -> List[str]:
        return [s for s in SEGMENT_ORDER if self.segments.get(s)]


class TargetSelector:
    def __init__(
        self,
        providers: Mapping[str, SegmentProvider],
        default_pool: Optional[SegmentProvider] = None,
    ):
        self.providers: Dict[str, SegmentProvider] = dict(providers)
        self.default_pool = default_pool

    async def select(self, policy: PriorityPolicy) -> List[TargetEntity]:
        selected: List[TargetEntity] = []
        seen: set[int] = set()

        for segment in policy.enabled_segments():
            remaining = policy.max_per_run - len(selected)
            if remaining <= 0:
                break
            provider = self.providers.get(segment)
            if provider is None:
                logger.warning("分组未配置数据源，跳过 segment=%s", segment)
                continue
            candidates = await provider.list_candidates(remaining, frozenset(seen))
            added = self._take(candidates, selected, seen, policy.max_per_run)
            logger.debug("分组选取 segment=%s added=%d", segment, added)

        remaining = policy.max_per_run - len(selected)
        if remaining > 0 and self.default_pool is not None:
            candidates = await self.default_pool.list_candidates(
                remaining, frozenset(seen)
            )
            added = self._take(candidates, selected, seen, policy.max_per_run)
            logger.debug("默认池补足 added=%d", added)

        return selected

    @staticmethod
    def _take(
        candidates: List[TargetEntity],
        selected: List[TargetEntity],
        seen: set[int],
        cap: int,
    ) -> int:
        added = 0
        for entity in candidates:
            if len(selected) >= cap:
                break
            if entity.id in seen:
                continue
            seen.add(entity.id)
            selected.append(entity)
            added += 1
        return added
