from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

BASE_DIR = Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from ticket_importer import models  # noqa: E402
from ticket_importer.db.base import Base  # noqa: E402
from ticket_importer.models.enums import CustomFieldFormat, UserRole  # noqa: E402


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def seed(db):
    """A small store: two projects, members, enumerations and custom fields."""
    new = models.TicketStatus(name="New", is_closed=False, position=1)
    in_progress = models.TicketStatus(name="In Progress", is_closed=False, position=2)
    closed = models.TicketStatus(name="Closed", is_closed=True, position=3)
    normal = models.TicketPriority(name="Normal", is_default=True, position=1)
    high = models.TicketPriority(name="High", is_default=False, position=2)
    db.add_all([new, in_progress, closed, normal, high])
    db.flush()

    bug = models.Tracker(name="Bug", default_status_id=new.id, position=1)
    feature = models.Tracker(name="Feature", default_status_id=new.id, position=2)
    development = models.TimeEntryActivity(name="Development", is_default=True)
    design = models.TimeEntryActivity(name="Design", is_default=False)

    admin = models.User(
        login="admin", email="admin@example.com", first_name="Redmine", last_name="Admin", role=UserRole.admin
    )
    jsmith = models.User(
        login="jsmith", email="jsmith@example.com", first_name="John", last_name="Smith", role=UserRole.agent
    )
    dlopper = models.User(
        login="dlopper", email="dlopper@example.com", first_name="Dave", last_name="Lopper", role=UserRole.user
    )
    outsider = models.User(
        login="outsider", email="outsider@example.com", first_name="Olga", last_name="Outside", role=UserRole.user
    )
    project = models.Project(name="eCookbook", identifier="ecookbook")
    other_project = models.Project(name="OnlineStore", identifier="onlinestore")
    db.add_all([bug, feature, development, design, admin, jsmith, dlopper, outsider, project, other_project])
    db.flush()

    db.add_all(
        [
            models.ProjectMember(project_id=project.id, user_id=admin.id),
            models.ProjectMember(project_id=project.id, user_id=jsmith.id),
            models.ProjectMember(project_id=project.id, user_id=dlopper.id),
            models.ProjectMember(project_id=other_project.id, user_id=admin.id),
        ]
    )
    tags = models.CustomField(
        name="Tags",
        field_format=CustomFieldFormat.list,
        is_multiple=True,
        is_for_all=True,
        possible_values=["tag1", "tag2", "tag3"],
    )
    affected = models.CustomField(
        name="Affected versions",
        field_format=CustomFieldFormat.version,
        is_multiple=True,
        is_for_all=True,
    )
    external_ref = models.CustomField(
        name="External ref",
        field_format=CustomFieldFormat.string,
        is_for_all=True,
    )
    db.add_all([tags, affected, external_ref])
    db.commit()

    return SimpleNamespace(
        project=project,
        other_project=other_project,
        admin=admin,
        jsmith=jsmith,
        dlopper=dlopper,
        outsider=outsider,
        new=new,
        in_progress=in_progress,
        closed=closed,
        normal=normal,
        high=high,
        bug=bug,
        feature=feature,
        development=development,
        design=design,
        tags=tags,
        affected=affected,
        external_ref=external_ref,
    )


@pytest.fixture()
def make_ticket(db, seed):
    def _make(subject: str, *, project=None, status=None, ticket_id: int | None = None, **extra):
        ticket = models.Ticket(
            subject=subject,
            project_id=(project or seed.project).id,
            tracker_id=seed.bug.id,
            status_id=(status or seed.new).id,
            priority_id=seed.normal.id,
            author_id=seed.admin.id,
            **extra,
        )
        if ticket_id is not None:
            ticket.id = ticket_id
        db.add(ticket)
        db.commit()
        return ticket

    return _make


@pytest.fixture()
def run_csv(db, seed):
    """Stage ``text`` for the admin user and run it with the given options."""
    from ticket_importer.services.imports import ImportConfiguration, run_import, stage_upload

    def _run(text: str, fields_map: dict[str, str], *, user=None, project=None, **options):
        user = user or seed.admin
        project = project or seed.project
        preview = stage_upload(db, user, project, payload=text.encode("utf-8"))
        config = ImportConfiguration(
            project_id=project.id,
            fields_map=tuple(fields_map.items()),
            **options,
        )
        return run_import(db, user=user, project=project, config=config, token=preview.token)

    return _run
