"""Tests for webhook handling."""

import pytest
from pipewatch.src.models.pipeline import Pipeline
from pipewatch.src.models.run import CanonicalStatus, ObservedRun, RepositoryRef
from pipewatch.src.services.errors import InvalidPayload, InvalidSignature
from pipewatch.src.services.github import (
    parse_repository_url,
    parse_workflow_run_event,
    verify_signature,
)

def test_parse_workflow_run_payload(make_workflow_run):
    payload = make_workflow_run(status="completed", conclusion="success")

    repository, run = parse_workflow_run_event(payload)

    assert repository.name == "web"
    assert repository.full_name == "acme/web"
    assert run.external_id == "1001"
    assert run.status == CanonicalStatus.SUCCESS
    assert run.commit_hash == "a" * 40
    assert run.commit_message == "Fix flaky test"
    assert run.branch == "main"
    assert run.workflow_id == "101"
    assert run.duration_seconds == 125
    assert run.log_reference == "GitHub Actions Run: https://github.com/acme/web/actions/runs/1001"

def test_parse_in_progress_has_no_completion(make_workflow_run):
    _, run = parse_workflow_run_event(make_workflow_run())

    assert run.status == CanonicalStatus.RUNNING
    assert run.completed_at is None
    assert run.duration_seconds is None

def test_parse_payload_without_run():
    assert parse_workflow_run_event({"zen": "Keep it logically awesome."}) is None

@pytest.mark.parametrize("url,expected", [
    ("https://github.com/acme/web", ("acme", "web")),
    ("https://github.com/acme/web.git", ("acme", "web")),
    ("git@github.com:acme/web.git", ("acme", "web")),
    ("https://gitlab.com/acme/web", None),
    (None, None),
])
def test_parse_repository_url(url, expected):
    assert parse_repository_url(url) == expected

def test_verify_signature_without_secret():
    """When no secret is configured, verification should pass."""
    assert verify_signature(b"payload", "sha256=anything", "") is True

def test_verify_signature_with_secret(sign):
    body = b'{"ok": true}'
    assert verify_signature(body, sign(body), "test-secret") is True
    assert verify_signature(body, sign(body, "other"), "test-secret") is False

def test_verify_signature_missing_header():
    assert verify_signature(b"payload", None, "test-secret") is False

@pytest.mark.asyncio
async def test_webhook_creates_execution(engine, pipeline, make_workflow_run, to_body, sign):
    body = to_body(make_workflow_run())

    result = await engine.apply_webhook_payload(body, sign(body), "workflow_run")

    assert result.accepted
    assert result.created
    assert result.execution.build_number == 1
    assert result.execution.status == "running"

@pytest.mark.asyncio
async def test_webhook_lifecycle_notifies_once_per_transition(
    engine, pipeline, mailer, sink, make_workflow_run, to_body, sign
):
    await engine.pipelines.add_subscription("dev@example.com", pipeline.id)
    deliveries = [
        make_workflow_run(),
        make_workflow_run(),
        make_workflow_run(status="completed", conclusion="success"),
    ]

    for payload in deliveries:
        body = to_body(payload)
        await engine.apply_webhook_payload(body, sign(body), "workflow_run")
        await engine.drain()

    subjects = [subject for _, subject, _ in mailer.sent]
    assert subjects == ["[STARTED] Pipeline: web - CI", "[SUCCESS] Pipeline: web - CI"]
    assert [m["type"] for m in sink.messages] == ["execution_created", "execution_updated"]
    assert sink.messages[-1]["status"] == "success"
    assert sink.messages[-1]["pipelineId"] == str(pipeline.id)

@pytest.mark.asyncio
async def test_webhook_invalid_signature(engine, pipeline, make_workflow_run, to_body, sign):
    body = to_body(make_workflow_run())

    with pytest.raises(InvalidSignature):
        await engine.apply_webhook_payload(body, sign(b"something else"), "workflow_run")
    with pytest.raises(InvalidSignature):
        await engine.apply_webhook_payload(body, None, "workflow_run")

    assert await engine.store.list_by_pipeline(pipeline.id) == []

@pytest.mark.asyncio
async def test_webhook_invalid_json(engine, sign):
    body = b"not json"
    with pytest.raises(InvalidPayload):
        await engine.apply_webhook_payload(body, sign(body), "workflow_run")

@pytest.mark.asyncio
async def test_webhook_for_untracked_repository(engine, pipeline, sink, make_workflow_run, to_body, sign):
    body = to_body(make_workflow_run(full_name="acme/unknown"))

    result = await engine.apply_webhook_payload(body, sign(body), "workflow_run")
    await engine.drain()

    assert result.accepted
    assert result.execution is None
    assert result.reason == "No pipeline configured for this repository"
    assert sink.messages == []

@pytest.mark.asyncio
async def test_webhook_for_other_workflow_ignored(engine, pipeline, make_workflow_run, to_body, sign):
    body = to_body(make_workflow_run(workflow_id=999))

    result = await engine.apply_webhook_payload(body, sign(body), "workflow_run")

    assert result.execution is None

@pytest.mark.asyncio
async def test_webhook_for_inactive_pipeline_ignored(engine, pipeline, make_workflow_run, to_body, sign):
    await engine.pipelines.set_active(pipeline.id, False)
    body = to_body(make_workflow_run())

    result = await engine.apply_webhook_payload(body, sign(body), "workflow_run")

    assert result.execution is None

@pytest.mark.asyncio
async def test_ping_and_other_events(engine, to_body, sign):
    body = to_body({"zen": "Design for failure."})

    ping = await engine.apply_webhook_payload(body, sign(body), "ping")
    push = await engine.apply_webhook_payload(body, sign(body), "push")

    assert ping.reason == "pong"
    assert push.accepted
    assert push.execution is None

@pytest.mark.asyncio
async def test_webhook_matches_pipeline_named_by_workflow_file(engine, make_workflow_run, to_body, sign):
    by_file = await engine.pipelines.create_pipeline(
        name="web - CI file", owner="acme", repo="web", workflow_id="ci.yml"
    )
    body = to_body(make_workflow_run())

    result = await engine.apply_webhook_payload(body, sign(body), "workflow_run")

    assert result.created
    assert result.execution.pipeline_id == by_file.id

@pytest.mark.asyncio
async def test_webhook_for_other_workflow_file_ignored(engine, make_workflow_run, to_body, sign):
    await engine.pipelines.create_pipeline(
        name="web - Release", owner="acme", repo="web", workflow_id="release.yml"
    )
    body = to_body(make_workflow_run())

    result = await engine.apply_webhook_payload(body, sign(body), "workflow_run")

    assert result.execution is None

@pytest.mark.parametrize("workflow_id,path,expected", [
    ("101", ".github/workflows/ci.yml", True),
    ("ci.yml", ".github/workflows/ci.yml", True),
    (".github/workflows/ci.yml", ".github/workflows/ci.yml", True),
    ("ci.yml", "acme/shared/.github/workflows/ci.yml@refs/heads/main", True),
    ("deploy.yml", ".github/workflows/ci.yml", False),
])
def test_source_matches_workflow_by_id_or_path(source, workflow_id, path, expected):
    pipeline = Pipeline(name="web", owner="acme", repo="web", workflow_id=workflow_id)
    run = ObservedRun(
        external_id="1", status=CanonicalStatus.RUNNING, workflow_id="101", workflow_path=path
    )

    assert source.matches(pipeline, RepositoryRef(name="web", full_name="acme/web"), run) is expected
