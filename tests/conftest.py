from datetime import datetime, timedelta

import pytest
from flask import g

from reviewdesk import create_app
from reviewdesk.config import TestConfig
from reviewdesk.extensions import db as _db
from reviewdesk.models import User, Project, Deliverable, DeliverableFile
from reviewdesk.services.store import DeliverableStore
from reviewdesk.workflow.engine import WorkflowEngine

PASSWORD = "s3cret-pass1"


class TickingClock:
    """Deterministic clock; every call is one minute after the previous one."""

    def __init__(self, start=datetime(2024, 5, 1, 9, 0, 0)):
        self.now = start

    def __call__(self):
        self.now = self.now + timedelta(minutes=1)
        return self.now


@pytest.fixture
def app():
    app = create_app(TestConfig)

    # the test app context outlives each request; keep g from carrying the last user over
    @app.before_request
    def _fresh_login_state():
        g.pop("_login_user", None)

    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


def _make_user(name, email, role):
    u = User(name=name, email=email, role=role)
    u.set_password(PASSWORD)
    _db.session.add(u)
    _db.session.commit()
    return u


@pytest.fixture
def admin(app):
    return _make_user("Ava Admin", "ava@northwind-agency.com", "admin")


@pytest.fixture
def client_user(app):
    return _make_user("Cal Client", "cal@acme-corp.com", "client")


@pytest.fixture
def other_client(app):
    return _make_user("Olive Other", "olive@globex.com", "client")


@pytest.fixture
def project(app, client_user):
    p = Project(name="Spring Campaign", client_id=client_user.id)
    _db.session.add(p)
    _db.session.commit()
    return p


@pytest.fixture
def other_project(app, other_client):
    p = Project(name="Other Co Rebrand", client_id=other_client.id)
    _db.session.add(p)
    _db.session.commit()
    return p


@pytest.fixture
def make_deliverable(app, project, admin):
    def _make(status="draft", version=1, project_id=None, files=(), **kw):
        d = Deliverable(
            project_id=project_id or project.id,
            title=kw.pop("title", "Homepage hero"),
            type=kw.pop("type", "design"),
            status=status,
            version=version,
            created_by=admin.id,
            **kw,
        )
        _db.session.add(d)
        _db.session.flush()
        for pos, url in enumerate(files):
            _db.session.add(DeliverableFile(deliverable_id=d.id, url=url, name=url.rsplit("/", 1)[-1], position=pos))
        _db.session.commit()
        return d
    return _make


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def store(app):
    return DeliverableStore()


@pytest.fixture
def engine(store, clock):
    return WorkflowEngine(store, clock=clock)


@pytest.fixture
def http(app):
    return app.test_client()


@pytest.fixture
def login_as(http):
    def _login(user):
        resp = http.post("/auth/login", json={"email": user.email, "password": PASSWORD})
        assert resp.status_code == 200, resp.get_json()
        return http
    return _login
