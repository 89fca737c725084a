"""人员目录服务

提供任务所需的人员查询与更新，以及基于 persons 表的分组候选数据源。
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import func, or_, select, update

from ..jobs.targets import SEGMENT_ORDER, SegmentProvider, TargetEntity
from ..models.database import DatabaseManager, utcnow
from ..models.person import ROLE_MODEL, ROLE_UNKNOWN, ROLE_VIEWER, Person

logger = logging.getLogger("mhc.services.directory")

SEGMENT_FILTERS: Dict[str, Any] = {
    "watchlist": Person.on_watchlist.is_(True),
    "following": Person.following.is_(True),
    "followers": Person.follower.is_(True),
    "banned": Person.banned.is_(True),
    "live": Person.is_live.is_(True),
    "doms": Person.dom.is_(True),
    "friends": Person.friend.is_(True),
    "subs": Person.sub.is_(True),
    "tipped_me": Person.tipped_me_total > 0,
    "tipped_by_me": Person.tipped_by_me_total > 0,
}


def to_entity(person: Person) -> TargetEntity:
    return TargetEntity(
        id=person.id,
        username=person.username,
        role=person.role or ROLE_UNKNOWN,
        rid=person.rid,
        did=person.did,
    )


class PersonSegmentProvider(SegmentProvider):
    """persons 表上的分组候选

    按新鲜度列升序返回，从未处理过的排最前。
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        freshness_column: Any,
        predicate: Any = None,
    ):
        self.db_manager = db_manager
        self.freshness_column = freshness_column
        self.predicate = predicate

    async def list_candidates(
        self, limit: int, exclude_ids: frozenset[int]
    ) -> List[TargetEntity]:
        stmt = select(Person).where(Person.is_excluded.is_(False))
        if self.predicate is not None:
            stmt = stmt.where(self.predicate)
        if exclude_ids:
            stmt = stmt.where(Person.id.not_in(exclude_ids))
        stmt = stmt.order_by(
            self.freshness_column.asc().nulls_first(), Person.id.asc()
        ).limit(limit)

        session = self.db_manager.get_session()
        try:
            return [to_entity(p) for p in session.scalars(stmt)]
        finally:
            session.close()


def build_segment_providers(
    db_manager: DatabaseManager,
    freshness_column: Any,
) -> tuple[Dict[str, SegmentProvider], SegmentProvider]:
    """构造全部分组数据源与默认池"""
    providers: Dict[str, SegmentProvider] = {
        name: PersonSegmentProvider(db_manager, freshness_column, SEGMENT_FILTERS[name])
        for name in SEGMENT_ORDER
    }
    default_pool = PersonSegmentProvider(db_manager, freshness_column)
    return providers, default_pool


class PersonDirectory:
    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    def get(self, person_id: int) -> Optional[Person]:
        session = self.db_manager.get_session()
        try:
            return session.get(Person, person_id)
        finally:
            session.close()

    def get_by_username(self, username: str) -> Optional[Person]:
        session = self.db_manager.get_session()
        try:
            return session.scalars(
                select(Person).where(Person.username == username)
            ).first()
        finally:
            session.close()

    def get_or_create(self, username: str, role: str = ROLE_UNKNOWN) -> Person:
        session = self.db_manager.get_session()
        try:
            person = session.scalars(
                select(Person).where(Person.username == username)
            ).first()
            if person is None:
                person = Person(username=username, role=role)
                session.add(person)
                session.commit()
                logger.info("新增人员 username=%s role=%s", username, role)
            elif person.role == ROLE_UNKNOWN and role != ROLE_UNKNOWN:
                person.role = role
                session.commit()
            return person
        except Exception as e:
            session.rollback()
            logger.error("创建人员失败 username=%s error=%s", username, e)
            raise
        finally:
            session.close()

    def record_statbate(
        self,
        person_id: int,
        role: str,
        refreshed_at: datetime,
        rid: Optional[int] = None,
        did: Optional[int] = None,
    ) -> None:
        """Statbate 找到记录后更新角色与外部 ID"""
        values: Dict[str, Any] = {"role": role, "statbate_refreshed_at": refreshed_at}
        if rid is not None:
            values["rid"] = rid
        if did is not None:
            values["did"] = did
        self._update(person_id, values)

    def mark_statbate_checked(self, person_id: int, checked_at: datetime) -> None:
        self._update(person_id, {"statbate_refreshed_at": checked_at})

    def mark_profile_scraped(self, person_id: int, scraped_at: datetime) -> None:
        self._update(person_id, {"profile_scraped_at": scraped_at})

    def list_profile_candidates(
        self,
        limit: int,
        refresh_before: datetime,
        prioritize_watchlist: bool = True,
        prioritize_following: bool = True,
    ) -> List[TargetEntity]:
        """需要刷新主页的人员：关注列表优先，其次按最久未抓取排序"""
        order: List[Any] = []
        if prioritize_watchlist:
            order.append(Person.on_watchlist.desc())
        if prioritize_following:
            order.append(Person.following.desc())
        order += [Person.profile_scraped_at.asc().nulls_first(), Person.id.asc()]

        stmt = (
            select(Person)
            .where(Person.is_excluded.is_(False))
            .where(
                or_(
                    Person.profile_scraped_at.is_(None),
                    Person.profile_scraped_at < refresh_before,
                )
            )
            .order_by(*order)
            .limit(limit)
        )
        session = self.db_manager.get_session()
        try:
            return [to_entity(p) for p in session.scalars(stmt)]
        finally:
            session.close()

    def following_usernames(self, models_only: bool = False) -> List[str]:
        stmt = select(Person.username).where(
            Person.following.is_(True), Person.is_excluded.is_(False)
        )
        if models_only:
            stmt = stmt.where(Person.role == ROLE_MODEL)
        return self._usernames(stmt.order_by(Person.username))

    def model_usernames(self) -> List[str]:
        stmt = (
            select(Person.username)
            .where(Person.role == ROLE_MODEL, Person.is_excluded.is_(False))
            .order_by(Person.username)
        )
        return self._usernames(stmt)

    def set_live(self, usernames: Iterable[str], live: bool) -> int:
        names = list(usernames)
        if not names:
            return 0
        values: Dict[str, Any] = {"is_live": live}
        if live:
            values["last_seen_at"] = utcnow()
        return self._bulk_update(Person.username.in_(names), values)

    def clear_live_except(self, usernames: Iterable[str]) -> int:
        """完整扫描后把不在线的人员标记为离线"""
        return self._bulk_update(
            Person.is_live.is_(True) & Person.username.not_in(list(usernames)),
            {"is_live": False},
        )

    def role_counts(self) -> Dict[str, int]:
        session = self.db_manager.get_session()
        try:
            rows = session.execute(
                select(Person.role, func.count()).group_by(Person.role)
            ).all()
            counts = {ROLE_MODEL: 0, ROLE_VIEWER: 0, ROLE_UNKNOWN: 0}
            counts.update({role: count for role, count in rows})
            return counts
        finally:
            session.close()

    def segment_counts(self) -> Dict[str, int]:
        session = self.db_manager.get_session()
        try:
            return {
                name: session.scalar(
                    select(func.count()).select_from(Person).where(predicate)
                ) or 0
                for name, predicate in SEGMENT_FILTERS.items()
            }
        finally:
            session.close()

    def _usernames(self, stmt) -> List[str]:
        session = self.db_manager.get_session()
        try:
            return list(session.scalars(stmt))
        finally:
            session.close()

    def _update(self, person_id: int, values: Mapping[str, Any]) -> None:
        self._bulk_update(Person.id == person_id, values)

    def _bulk_update(self, condition: Any, values: Mapping[str, Any]) -> int:
        session = self.db_manager.get_session()
        try:
            result = session.execute(
                update(Person).where(condition).values(**values)
            )
            session.commit()
            return result.rowcount or 0
        except Exception as e:
            session.rollback()
            logger.error("更新人员失败 values=%s error=%s", dict(values), e)
            raise
        finally:
            session.close()
