"""Internal trigger endpoints invoked by cron jobs and sibling services."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool

from ..analytics import run_nightly_aggregation
from ..core.internal_auth import require_internal_secret
from ..escalation import ConversationNotFoundError
from ..models import Agent
from ..processing import process_training_scrape, process_training_upload
from ..runtime import Runtime, get_runtime
from ..tools import ToolContext

router = APIRouter(
    prefix="/api/internal",
    tags=["internal"],
    dependencies=[Depends(require_internal_secret)],
)

logger = logging.getLogger(__name__)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ProcessConversationRequest(_CamelModel):
    conversation_id: UUID = Field(alias="conversationId")


class TrainingRequest(_CamelModel):
    type: Literal["scrape", "upload"]
    source_id: Optional[UUID] = Field(default=None, alias="sourceId")
    agent_id: Optional[UUID] = Field(default=None, alias="agentId")
    url: Optional[str] = None
    pages: Optional[List[Dict[str, Any]]] = None
    file_name: Optional[str] = Field(default=None, alias="fileName")
    extracted_text: Optional[str] = Field(default=None, alias="extractedText")
    extracted_title: Optional[str] = Field(default=None, alias="extractedTitle")
    source_type: Optional[str] = Field(default=None, alias="sourceType")


class ExecuteToolRequest(_CamelModel):
    tool_name: str = Field(alias="toolName", min_length=1)
    agent_id: UUID = Field(alias="agentId")
    args: Dict[str, Any] = Field(default_factory=dict)
    conversation_id: Optional[UUID] = Field(default=None, alias="conversationId")


class EscalationRequest(_CamelModel):
    conversation_id: UUID = Field(alias="conversationId")
    reason: str = Field(min_length=1)
    agent_id: UUID = Field(alias="agentId")
    channel: Optional[str] = None


@router.post("/process-conversation")
async def process_conversation(
    req: ProcessConversationRequest, runtime: Runtime = Depends(get_runtime)
) -> dict:
    status = await run_in_threadpool(runtime.post_processor.process, req.conversation_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"success": status == "completed", "status": status}


@router.post("/process-training")
async def process_training(req: TrainingRequest, runtime: Runtime = Depends(get_runtime)) -> dict:
    if req.source_id is None or req.agent_id is None:
        raise HTTPException(status_code=400, detail="Missing required fields")
    if req.type == "scrape":
        if not req.url:
            raise HTTPException(status_code=400, detail="Missing required fields")
        ok = await run_in_threadpool(
            lambda: process_training_scrape(
                runtime.session_factory,
                source_id=req.source_id,
                agent_id=req.agent_id,
                pages=req.pages or [],
            )
        )
    else:
        if not req.file_name or not req.extracted_text:
            raise HTTPException(status_code=400, detail="Missing required fields")
        ok = await run_in_threadpool(
            lambda: process_training_upload(
                runtime.session_factory,
                source_id=req.source_id,
                agent_id=req.agent_id,
                file_name=req.file_name,
                extracted_text=req.extracted_text,
                extracted_title=req.extracted_title,
                source_type=req.source_type,
            )
        )
    return {"success": ok}


@router.post("/execute-tool")
async def execute_tool(req: ExecuteToolRequest, runtime: Runtime = Depends(get_runtime)) -> dict:
    with runtime.session_factory() as session:
        agent = session.get(Agent, req.agent_id)
    if agent is None:
        return {"success": False, "error": "Agent not found"}
    context = ToolContext(agent=agent, conversation_id=req.conversation_id)
    result = await run_in_threadpool(runtime.tools.execute, req.tool_name, req.args, context)
    return result.as_dict()


@router.post("/handle-escalation")
async def handle_escalation(
    req: EscalationRequest, runtime: Runtime = Depends(get_runtime)
) -> dict:
    try:
        outcome = await run_in_threadpool(
            runtime.escalation.handle,
            req.conversation_id,
            req.reason,
            req.channel,
            req.agent_id,
        )
    except ConversationNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Conversation not found") from exc
    return outcome.as_dict()


@router.post("/process-followups")
async def process_followups(runtime: Runtime = Depends(get_runtime)) -> dict:
    report = await run_in_threadpool(runtime.delivery_runner.run)
    return report.as_dict()


@router.post("/retry-processing")
async def retry_processing(runtime: Runtime = Depends(get_runtime)) -> dict:
    retried = await run_in_threadpool(
        runtime.post_processor.retry_failed_processing,
        runtime.settings.processing_retry_batch_size,
    )
    return {"retried": retried}


@router.post("/retry-webhooks")
async def retry_webhooks(runtime: Runtime = Depends(get_runtime)) -> dict:
    retried = await run_in_threadpool(runtime.webhook_sweep.retry_failed)
    return {"retried": retried}


@router.post("/aggregate-analytics")
async def aggregate_analytics(runtime: Runtime = Depends(get_runtime)) -> dict:
    aggregated = await run_in_threadpool(run_nightly_aggregation, runtime.session_factory)
    return {"success": True, "agents": aggregated}
