from fastapi import APIRouter, Depends, HTTPException, Query, Response
from typing import List
from uuid import UUID

from pipewatch.src.models.run import (
    CredentialRequest,
    ExecutionResponse,
    PipelineCreate,
    PipelineResponse,
    PipelineSelectionRequest,
    PipelineUpdate,
    SelectedPipelineResponse,
    WorkflowDiscoveryRequest,
    WorkflowSummary,
)
from pipewatch.src.routes.deps import get_engine
from pipewatch.src.services.engine import ReconciliationEngine, resolve_repository
from pipewatch.src.services.errors import UpstreamError

router = APIRouter(tags=["pipelines"])

async def _get_pipeline_or_404(engine: ReconciliationEngine, pipeline_id: UUID):
    pipeline = await engine.pipelines.get(pipeline_id)
    if not pipeline:
        raise HTTPException(status_code=404, detail="Pipeline not found")
    return pipeline

@router.get("/pipelines", response_model=List[PipelineResponse])
async def list_pipelines(engine: ReconciliationEngine = Depends(get_engine)):
    """List all tracked pipelines."""
    return await engine.pipelines.list_pipelines()

@router.post("/pipelines", response_model=PipelineResponse, status_code=201)
async def create_pipeline(request: PipelineCreate, engine: ReconciliationEngine = Depends(get_engine)):
    """Track a repository workflow as a pipeline."""
    if not (request.owner and request.repo) and not request.repository_url:
        raise HTTPException(status_code=422, detail="repository_url or owner and repo are required")
    try:
        return await engine.pipelines.create_pipeline(
            name=request.name,
            repository_url=request.repository_url,
            owner=request.owner,
            repo=request.repo,
            workflow_id=request.workflow_id,
            workflow_name=request.workflow_name,
            source_kind=request.source_kind,
        )
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))

@router.post("/pipelines/sync")
async def sync_pipelines(engine: ReconciliationEngine = Depends(get_engine)):
    """Run a polling tick immediately."""
    report = await engine.poll_once()
    if report is None:
        return {"status": "skipped", "reason": "A polling tick is already in progress"}
    return {
        "status": "completed",
        "polled": report.polled,
        "skipped": report.skipped,
        "failed": report.failed,
        "created": report.created,
        "updated": report.updated,
    }

@router.post("/pipelines/discover", response_model=List[WorkflowSummary])
async def discover_workflows(
    request: WorkflowDiscoveryRequest,
    engine: ReconciliationEngine = Depends(get_engine),
):
    """List the workflows of a repository so some can be tracked."""
    if not request.token:
        raise HTTPException(status_code=422, detail="token must not be empty")
    try:
        owner, repo = resolve_repository(request.repository_url, request.owner, request.repo)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    try:
        return await engine.discover_workflows(request.token, owner, repo)
    except UpstreamError as e:
        raise HTTPException(status_code=502, detail=str(e))

@router.post("/pipelines/select", response_model=List[SelectedPipelineResponse], status_code=201)
async def select_pipelines(
    request: PipelineSelectionRequest,
    engine: ReconciliationEngine = Depends(get_engine),
):
    """Track selected workflows as pipelines and import their recent runs."""
    if not request.token:
        raise HTTPException(status_code=422, detail="token must not be empty")
    try:
        outcomes = await engine.add_selected_pipelines(request.token, request.repositories)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return [
        {
            "pipeline": outcome.pipeline,
            "created": outcome.created,
            "synced": outcome.synced,
            "error": outcome.error,
        }
        for outcome in outcomes
    ]

@router.get("/pipelines/{pipeline_id}", response_model=PipelineResponse)
async def get_pipeline(pipeline_id: UUID, engine: ReconciliationEngine = Depends(get_engine)):
    return await _get_pipeline_or_404(engine, pipeline_id)

@router.patch("/pipelines/{pipeline_id}", response_model=PipelineResponse)
async def update_pipeline(
    pipeline_id: UUID,
    request: PipelineUpdate,
    engine: ReconciliationEngine = Depends(get_engine),
):
    """Enable or disable a pipeline."""
    pipeline = await engine.pipelines.set_active(pipeline_id, request.is_active)
    if not pipeline:
        raise HTTPException(status_code=404, detail="Pipeline not found")
    return pipeline

@router.delete("/pipelines/{pipeline_id}", status_code=204)
async def delete_pipeline(pipeline_id: UUID, engine: ReconciliationEngine = Depends(get_engine)):
    """Delete a pipeline and its execution history."""
    if not await engine.pipelines.delete_pipeline(pipeline_id):
        raise HTTPException(status_code=404, detail="Pipeline not found")
    engine.clear_credential(pipeline_id)
    return Response(status_code=204)

@router.get("/pipelines/{pipeline_id}/executions", response_model=List[ExecutionResponse])
async def list_executions(
    pipeline_id: UUID,
    limit: int = Query(50, ge=1, le=500),
    engine: ReconciliationEngine = Depends(get_engine),
):
    """List executions of a pipeline, newest build first."""
    await _get_pipeline_or_404(engine, pipeline_id)
    return await engine.store.list_by_pipeline(pipeline_id, limit=limit)

@router.get("/executions/{execution_id}", response_model=ExecutionResponse)
async def get_execution(execution_id: UUID, engine: ReconciliationEngine = Depends(get_engine)):
    execution = await engine.store.get_by_id(execution_id)
    if not execution:
        raise HTTPException(status_code=404, detail="Execution not found")
    return execution

@router.put("/pipelines/{pipeline_id}/credential", status_code=204)
async def set_credential(
    pipeline_id: UUID,
    request: CredentialRequest,
    engine: ReconciliationEngine = Depends(get_engine),
):
    """Attach an upstream token used for polling; kept in memory only."""
    await _get_pipeline_or_404(engine, pipeline_id)
    if not request.token:
        raise HTTPException(status_code=422, detail="token must not be empty")
    engine.set_credential(pipeline_id, request.token)
    return Response(status_code=204)

@router.delete("/pipelines/{pipeline_id}/credential", status_code=204)
async def clear_credential(pipeline_id: UUID, engine: ReconciliationEngine = Depends(get_engine)):
    engine.clear_credential(pipeline_id)
    return Response(status_code=204)

@router.post("/pipelines/{pipeline_id}/webhook", response_model=PipelineResponse)
async def register_webhook(pipeline_id: UUID, engine: ReconciliationEngine = Depends(get_engine)):
    """Register the upstream webhook for a pipeline."""
    try:
        return await engine.register_webhook(pipeline_id)
    except LookupError:
        raise HTTPException(status_code=404, detail="Pipeline not found")
    except PermissionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UpstreamError as e:
        raise HTTPException(status_code=502, detail=str(e))
