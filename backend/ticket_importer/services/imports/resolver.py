"""Name/login to store-identity resolution, memoized for one batch."""

from __future__ import annotations

import enum
import logging
from uuid import uuid4

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from ticket_importer.core.exceptions import ReferenceNotFoundError
from ticket_importer.models.enumerations import TicketPriority, TicketStatus, TimeEntryActivity, Tracker
from ticket_importer.models.enums import VersionSharing
from ticket_importer.models.project import Category, Project, Version
from ticket_importer.models.user import User
from ticket_importer.services.imports.cache import ReferenceCache

logger = logging.getLogger(__name__)

ANONYMOUS_LOGIN = "anonymous"


class ReferenceKind(str, enum.Enum):
    actor = "user"
    status = "status"
    priority = "priority"
    tracker = "tracker"
    activity = "activity"
    version = "version"
    category = "category"
    project = "project"


ENUMERATION_MODELS = {
    ReferenceKind.status: TicketStatus,
    ReferenceKind.priority: TicketPriority,
    ReferenceKind.tracker: Tracker,
    ReferenceKind.activity: TimeEntryActivity,
}


class ReferenceResolver:
    """Resolves references by kind; only successful lookups are cached."""

    def __init__(
        self,
        db: Session,
        cache: ReferenceCache | None = None,
        *,
        use_anonymous: bool = False,
        create_versions: bool = False,
        create_categories: bool = False,
    ) -> None:
        self.db = db
        self.cache = cache if cache is not None else ReferenceCache()
        self.use_anonymous = use_anonymous
        self.create_versions = create_versions
        self.create_categories = create_categories

    def resolve(self, kind: ReferenceKind, key: str | None, *, project: Project | None = None):
        if kind == ReferenceKind.actor:
            return self.actor(key)
        if kind in ENUMERATION_MODELS:
            return self.enumeration(kind, key)
        if kind == ReferenceKind.version:
            return self.version(self._require_project(kind, project), key)
        if kind == ReferenceKind.category:
            return self.category(self._require_project(kind, project), key)
        if kind == ReferenceKind.project:
            return self.project(key)
        raise ValueError(f"unsupported reference kind: {kind}")

    @staticmethod
    def _require_project(kind: ReferenceKind, project: Project | None) -> Project:
        if project is None:
            raise ValueError(f"{kind.value} lookups are scoped to a project")
        return project

    # ----- actors -----

    def actor(self, key: str | None) -> User:
        login = (key or "").strip().lower()
        if not login:
            raise ReferenceNotFoundError(ReferenceKind.actor.value, key)
        cache_key = (ReferenceKind.actor, login)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        user = self._user_by_login(login) or self._user_by_names(login) or self._user_by_display_name(login)
        if user is None and self.use_anonymous:
            user = self.anonymous_user()
        if user is None:
            raise ReferenceNotFoundError(ReferenceKind.actor.value, login)
        return self.cache.insert_if_absent(cache_key, user)

    def _user_by_login(self, login: str) -> User | None:
        return self.db.execute(select(User).where(func.lower(User.login) == login)).scalars().first()

    def _user_by_names(self, login: str) -> User | None:
        parts = login.split()
        if len(parts) < 2:
            return None
        first, last = parts[0], parts[1]
        stmt = select(User).where(func.lower(User.first_name) == first, func.lower(User.last_name) == last)
        return self.db.execute(stmt.order_by(User.login)).scalars().first()

    def _user_by_display_name(self, login: str) -> User | None:
        stmt = select(User).where(
            or_(
                func.lower(User.first_name + " " + User.last_name) == login,
                func.lower(User.last_name) == login,
            )
        )
        return self.db.execute(stmt.order_by(User.login)).scalars().first()

    def anonymous_user(self) -> User:
        user = self.db.execute(select(User).where(User.is_anonymous.is_(True))).scalars().first()
        if user is None:
            user = User(
                login=ANONYMOUS_LOGIN,
                email=f"anonymous-{uuid4().hex[:12]}@invalid",
                last_name="Anonymous",
                is_active=False,
                is_anonymous=True,
            )
            self.db.add(user)
            self.db.commit()
            logger.info("Created anonymous placeholder user %s", user.id)
        return user

    # ----- enumerations -----

    def enumeration(self, kind: ReferenceKind, name: str | None):
        model = ENUMERATION_MODELS[kind]
        name = (name or "").strip()
        cache_key = (kind, name)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached
        record = self.db.execute(select(model).where(model.name == name)).scalars().first() if name else None
        if record is None:
            raise ReferenceNotFoundError(kind.value, name)
        return self.cache.insert_if_absent(cache_key, record)

    def status(self, name: str | None) -> TicketStatus:
        return self.enumeration(ReferenceKind.status, name)

    def priority(self, name: str | None) -> TicketPriority:
        return self.enumeration(ReferenceKind.priority, name)

    def tracker(self, name: str | None) -> Tracker:
        return self.enumeration(ReferenceKind.tracker, name)

    def activity(self, name: str | None) -> TimeEntryActivity:
        return self.enumeration(ReferenceKind.activity, name)

    # ----- project-scoped -----

    def version(self, project: Project, name: str | None) -> Version:
        name = (name or "").strip()
        cache_key = (ReferenceKind.version, project.id, name)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached
        version = None
        if name:
            stmt = (
                select(Version)
                .where(
                    Version.name == name,
                    or_(Version.project_id == project.id, Version.sharing == VersionSharing.system),
                )
                .order_by((Version.project_id == project.id).desc(), Version.id)
            )
            version = self.db.execute(stmt).scalars().first()
            if version is None and self.create_versions:
                version = Version(project_id=project.id, name=name)
                self.db.add(version)
                self.db.commit()
                logger.info("Created version '%s' in project %s", name, project.identifier)
        if version is None:
            raise ReferenceNotFoundError(ReferenceKind.version.value, name)
        return self.cache.insert_if_absent(cache_key, version)

    def category(self, project: Project, name: str | None) -> Category:
        name = (name or "").strip()
        cache_key = (ReferenceKind.category, project.id, name)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached
        category = None
        if name:
            stmt = select(Category).where(Category.project_id == project.id, Category.name == name)
            category = self.db.execute(stmt).scalars().first()
            if category is None and self.create_categories:
                category = Category(project_id=project.id, name=name)
                self.db.add(category)
                self.db.commit()
                logger.info("Created category '%s' in project %s", name, project.identifier)
        if category is None:
            raise ReferenceNotFoundError(ReferenceKind.category.value, name)
        return self.cache.insert_if_absent(cache_key, category)

    def project(self, name: str | None) -> Project:
        name = (name or "").strip()
        cache_key = (ReferenceKind.project, name)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached
        record = self.db.execute(select(Project).where(Project.name == name)).scalars().first() if name else None
        if record is None:
            raise ReferenceNotFoundError(ReferenceKind.project.value, name)
        return self.cache.insert_if_absent(cache_key, record)
