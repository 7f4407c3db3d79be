"""
Best-effort persistence for clients, daily logs and saved reports.

``MemoryStore`` keeps everything in process (lost on restart);
``SqlStore`` uses the SQLAlchemy async engine when ``DATABASE_URL`` is set.
Both are seeded with the same two users.
"""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from tcm_portal.models.database_models import DailyLog, Report, User
from tcm_portal.models.schemas import DailyLogCreate, ReportSaveRequest, UserRole

logger = logging.getLogger(__name__)

DEFAULT_USERS = (
    {"id": 1, "name": "CS Agent Amy", "role": UserRole.AGENT.value},
    {"id": 2, "name": "Client John Doe", "role": UserRole.CLIENT.value},
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def serialize_content(content: Any) -> str:
    """Report content is stored as JSON text; strings are kept verbatim."""
    if isinstance(content, str):
        return content
    return json.dumps(content if content is not None else {}, ensure_ascii=False)


def _report_fields(request: ReportSaveRequest) -> Dict[str, Any]:
    return {
        "client_name": request.client_name or "Anonymous",
        "client_phone": request.client_phone or "N/A",
        "diagnosis": request.diagnosis or "N/A",
        "content": serialize_content(request.content),
        "created_at": _now_iso(),
    }


def _log_fields(entry: DailyLogCreate) -> Dict[str, Any]:
    fields = entry.model_dump()
    fields["coffee"] = 1 if entry.coffee else 0
    return fields


class PortalStore(ABC):
    """Key-based get/set of opaque records."""

    backend: str = "unknown"
    persistent: bool = False

    @abstractmethod
    async def get_clients(self) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def get_logs(self, user_id: int) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def save_log(self, entry: DailyLogCreate) -> int:
        ...

    @abstractmethod
    async def get_reports(self) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def get_report(self, report_id: int) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def save_report(self, request: ReportSaveRequest) -> int:
        ...


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

class MemoryStore(PortalStore):
    backend = "memory"
    persistent = False

    def __init__(self) -> None:
        self.users: List[Dict[str, Any]] = [dict(u) for u in DEFAULT_USERS]
        self.logs_by_user: Dict[int, List[Dict[str, Any]]] = {}
        self.reports: List[Dict[str, Any]] = []
        self._report_seq = 0
        self._log_seq = 0

    async def get_clients(self) -> List[Dict[str, Any]]:
        return [dict(u) for u in self.users if u["role"] == UserRole.CLIENT.value]

    async def get_logs(self, user_id: int) -> List[Dict[str, Any]]:
        logs = self.logs_by_user.get(user_id, [])
        return sorted((dict(log) for log in logs), key=lambda log: log.get("date") or "", reverse=True)

    async def save_log(self, entry: DailyLogCreate) -> int:
        self._log_seq += 1
        record = {"id": self._log_seq, **_log_fields(entry)}
        self.logs_by_user.setdefault(entry.user_id, []).insert(0, record)
        return record["id"]

    async def get_reports(self) -> List[Dict[str, Any]]:
        return sorted((dict(r) for r in self.reports), key=lambda r: r["created_at"], reverse=True)

    async def get_report(self, report_id: int) -> Optional[Dict[str, Any]]:
        for record in self.reports:
            if record["id"] == report_id:
                return dict(record)
        return None

    async def save_report(self, request: ReportSaveRequest) -> int:
        self._report_seq += 1
        record = {"id": self._report_seq, **_report_fields(request)}
        self.reports.insert(0, record)
        return record["id"]


# ---------------------------------------------------------------------------
# SQLAlchemy
# ---------------------------------------------------------------------------

class SqlStore(PortalStore):
    backend = "sql"
    persistent = True

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    async def seed(self) -> None:
        """Insert the default users if the users table is empty."""
        async with self._session_factory() as session:
            existing = (await session.execute(select(User.id).limit(1))).first()
            if existing is None:
                session.add_all(
                    User(id=u["id"], name=u["name"], role=UserRole(u["role"])) for u in DEFAULT_USERS
                )
                await session.commit()
                logger.info("Seeded %d default users", len(DEFAULT_USERS))

    async def get_clients(self) -> List[Dict[str, Any]]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(User).where(User.role == UserRole.CLIENT).order_by(User.id)
            )
            return [
                {"id": u.id, "name": u.name, "role": UserRole(u.role).value}
                for u in result.scalars().all()
            ]

    async def get_logs(self, user_id: int) -> List[Dict[str, Any]]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(DailyLog)
                .where(DailyLog.user_id == user_id)
                .order_by(DailyLog.date.desc(), DailyLog.id.desc())
            )
            return [
                {
                    "id": log.id,
                    "user_id": log.user_id,
                    "date": log.date,
                    "breakfast_img": log.breakfast_img,
                    "lunch_img": log.lunch_img,
                    "dinner_img": log.dinner_img,
                    "sleep_start": log.sleep_start,
                    "sleep_end": log.sleep_end,
                    "water_cups": log.water_cups,
                    "coffee": log.coffee,
                    "notes": log.notes,
                }
                for log in result.scalars().all()
            ]

    async def save_log(self, entry: DailyLogCreate) -> int:
        async with self._session_factory() as session:
            log = DailyLog(**_log_fields(entry))
            session.add(log)
            await session.flush()
            log_id = log.id
            await session.commit()
            return log_id

    @staticmethod
    def _report_dict(report) -> Dict[str, Any]:
        return {
            "id": report.id,
            "client_name": report.client_name,
            "client_phone": report.client_phone,
            "diagnosis": report.diagnosis,
            "content": report.content,
            "created_at": report.created_at,
        }

    async def get_reports(self) -> List[Dict[str, Any]]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Report).order_by(Report.created_at.desc(), Report.id.desc())
            )
            return [self._report_dict(r) for r in result.scalars().all()]

    async def get_report(self, report_id: int) -> Optional[Dict[str, Any]]:
        async with self._session_factory() as session:
            report = await session.get(Report, report_id)
            return self._report_dict(report) if report is not None else None

    async def save_report(self, request: ReportSaveRequest) -> int:
        async with self._session_factory() as session:
            report = Report(**_report_fields(request))
            session.add(report)
            await session.flush()
            report_id = report.id
            await session.commit()
            return report_id


# ---------------------------------------------------------------------------
# Process-wide store
# ---------------------------------------------------------------------------

_store: Optional[PortalStore] = None


def set_store(store: Optional[PortalStore]) -> None:
    global _store
    _store = store


def get_store() -> PortalStore:
    """
    FastAPI dependency returning the active store.

    Falls back to a fresh ``MemoryStore`` if startup did not install one.
    """
    global _store
    if _store is None:
        _store = MemoryStore()
    return _store
