"""Shared fixtures: a throwaway SQLite database and recording collaborators."""

import hashlib
import hmac
import json

import pytest

from pipewatch.src.config import Settings
from pipewatch.src.db.database import create_engine_for, create_session_factory, init_db
from pipewatch.src.models.run import SourceKind
from pipewatch.src.services.broadcaster import RealtimeBroadcaster
from pipewatch.src.services.engine import ReconciliationEngine
from pipewatch.src.services.errors import DeliveryFailed
from pipewatch.src.services.sources import GitHubActionsSource

WEBHOOK_SECRET = "test-secret"

class RecordingMailer:
    def __init__(self, configured=True):
        self.configured = configured
        self.host = "smtp.test"
        self.port = 25
        self.sent = []
        self.fail_for = set()

    async def deliver(self, address, subject, body):
        if not self.configured:
            return False
        if address in self.fail_for:
            raise DeliveryFailed(address, "mailbox unavailable")
        self.sent.append((address, subject, body))
        return True

class RecordingSink:
    def __init__(self):
        self.messages = []

    async def __call__(self, message):
        self.messages.append(message)

class FakeGitHubSource(GitHubActionsSource):
    """GitHub source whose run listing is scripted per repository."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.runs = {}
        self.errors = {}
        self.calls = []
        self.registered = []
        self.workflows = {}

    async def list_recent_runs(self, pipeline, token, limit):
        self.calls.append((pipeline.name, token))
        if pipeline.repo in self.errors:
            raise self.errors[pipeline.repo]
        runs = self.runs.get(pipeline.repo, [])[:limit]
        return [run.model_copy(update={"pipeline_id": pipeline.id}) for run in runs]

    async def register_webhook(self, pipeline, token, callback_url):
        self.registered.append((pipeline.name, token, callback_url))
        return "hook-1"

    async def list_workflows(self, owner, repo, token):
        if repo in self.errors:
            raise self.errors[repo]
        return self.workflows.get(repo, [])

def _sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()

@pytest.fixture
def make_workflow_run():
    def _make(
        run_id=1001,
        status="in_progress",
        conclusion=None,
        full_name="acme/web",
        workflow_id=101,
        run_attempt=1,
        updated_at="2024-05-01T10:02:05Z",
        path=".github/workflows/ci.yml",
    ):
        owner, name = full_name.split("/")
        return {
            "action": "completed" if status == "completed" else "in_progress",
            "workflow_run": {
                "id": run_id,
                "name": "CI",
                "workflow_id": workflow_id,
                "path": path,
                "head_branch": "main",
                "head_sha": "a" * 40,
                "status": status,
                "conclusion": conclusion,
                "run_attempt": run_attempt,
                "html_url": f"https://github.com/{full_name}/actions/runs/{run_id}",
                "created_at": "2024-05-01T10:00:00Z",
                "run_started_at": "2024-05-01T10:00:00Z",
                "updated_at": updated_at,
                "head_commit": {"id": "a" * 40, "message": "Fix flaky test"},
            },
            "repository": {
                "name": name,
                "full_name": full_name,
                "html_url": f"https://github.com/{full_name}",
                "owner": {"login": owner},
            },
        }
    return _make

@pytest.fixture
def to_body():
    def _to_body(payload) -> bytes:
        return json.dumps(payload).encode()
    return _to_body

@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path}/pipewatch.db",
        github_webhook_secret=WEBHOOK_SECRET,
        public_base_url="https://pipewatch.test",
        polling_enabled=False,
        poll_interval_seconds=0.05,
        smtp_host="",
    )

@pytest.fixture
async def session_factory(settings):
    engine = create_engine_for(settings.database_url)
    await init_db(engine)
    yield create_session_factory(engine)
    await engine.dispose()

@pytest.fixture
def mailer():
    return RecordingMailer()

@pytest.fixture
def sink():
    return RecordingSink()

@pytest.fixture
def source():
    return FakeGitHubSource(webhook_secret=WEBHOOK_SECRET)

@pytest.fixture
async def engine(settings, session_factory, source, mailer, sink):
    broadcaster = RealtimeBroadcaster()
    broadcaster.register(sink)
    engine = ReconciliationEngine(
        settings,
        session_factory,
        sources={SourceKind.GITHUB: source},
        mailer=mailer,
        broadcaster=broadcaster,
    )
    yield engine
    await engine.stop()

@pytest.fixture
async def pipeline(engine):
    return await engine.pipelines.create_pipeline(
        name="web - CI",
        owner="acme",
        repo="web",
        workflow_id="101",
        workflow_name="CI",
    )

@pytest.fixture
def sign():
    return _sign
