import pathlib
import sys
import uuid
from dataclasses import dataclass

import pytest
from fastapi import FastAPI, Request
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from app.app_logging import init_logging
from app.cases import InMemoryCaseRepository
from app.cases.service import CaseLifecycleController
from app.classification import ClassificationAdapter
from app.core.settings import reset_settings_cache
from app.models import AdminUser, Base, Tenant
from app.security import create_access_token, hash_password, reset_jwt_settings_cache
from app.security.auth import reset_session_factory

TOKEN_ENV = {
    "ADMIN_TOKEN_SECRET": "super-secret-key",
    "ADMIN_TOKEN_AUDIENCE": "silentdrop-dashboard",
    "ADMIN_TOKEN_ISSUER": "auth.silentdrop",
    "ADMIN_TOKEN_ALGORITHM": "HS256",
}


@dataclass
class AuthContext:
    engine: object
    session_factory: sessionmaker[Session]
    tenant_id: uuid.UUID
    users: dict[str, uuid.UUID]
    tokens: dict[str, str]
    password: str = "Secret123!"

    def header(self, role: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.tokens[role]}"}


@pytest.fixture
def app_factory(monkeypatch):
    def _create_app(log_dir: str, log_request_bodies: bool = False):
        """Create a FastAPI app with logging initialised."""
        monkeypatch.setenv("LOG_DIR", str(log_dir))
        if log_request_bodies:
            monkeypatch.setenv("LOG_REQUEST_BODIES", "true")
        app = FastAPI()

        @app.post("/echo")
        async def echo(request: Request):
            return await request.json()

        @app.post("/api/cases/status")
        async def status(request: Request):
            return await request.json()

        init_logging(app)
        return app

    return _create_app


@pytest.fixture
def token_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Configure admin token signing and validation."""

    for name, value in TOKEN_ENV.items():
        monkeypatch.setenv(name, value)
    reset_jwt_settings_cache()
    yield
    reset_jwt_settings_cache()


@pytest.fixture
def controller() -> CaseLifecycleController:
    """Controller for tenant ``acme`` backed by memory and keyword rules."""

    return CaseLifecycleController(
        InMemoryCaseRepository(),
        tenant_id="acme",
        classifier=ClassificationAdapter(),
    )


@pytest.fixture
def admin_auth(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path_factory: pytest.TempPathFactory,
    token_env: None,
) -> AuthContext:
    db_path = tmp_path_factory.mktemp("admin-auth") / "auth.db"
    db_url = f"sqlite+pysqlite:///{db_path}"
    monkeypatch.setenv("ADMIN_DATABASE_URL", db_url)
    reset_session_factory()
    reset_settings_cache()

    engine = create_engine(db_url, future=True)

    @event.listens_for(engine, "connect")
    def _register_uuid(conn, _record) -> None:  # pragma: no cover - SQLite test helper
        conn.create_function("gen_random_uuid", 0, lambda: str(uuid.uuid4()))
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine, expire_on_commit=False, future=True)

    users: dict[str, uuid.UUID] = {}
    user_objs: dict[str, AdminUser] = {}
    with session_factory.begin() as session:
        tenant = Tenant(name="Acme", slug="acme")
        session.add(tenant)
        session.flush()
        for role in ("viewer", "operator", "admin"):
            user = AdminUser(
                tenant_id=tenant.id,
                email=f"{role}@acme.example",
                name=role.title(),
                password_hash=hash_password("Secret123!"),
                role=role,
            )
            session.add(user)
            session.flush()
            users[role] = user.id
            user_objs[role] = user
        tenant_id = tenant.id

    tokens: dict[str, str] = {}
    for role, user in user_objs.items():
        token, _ = create_access_token(user)
        tokens[role] = token

    yield AuthContext(
        engine=engine,
        session_factory=session_factory,
        tenant_id=tenant_id,
        users=users,
        tokens=tokens,
    )

    reset_session_factory()
    reset_settings_cache()
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def api_app(monkeypatch: pytest.MonkeyPatch, tmp_path):
    """The SilentDrop application with fresh settings, cases and rate limits."""

    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("CASE_BACKEND", "memory")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("TENANT_ID", raising=False)
    monkeypatch.delenv("ALLOWED_TENANT_IDS", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    reset_settings_cache()

    from app.core.limits import limiter
    from app.main import app

    limiter.reset()
    app.state.case_registry = None
    app.state.tenant_directory = None
    yield app
    app.state.case_registry = None
    app.state.tenant_directory = None
    reset_settings_cache()
