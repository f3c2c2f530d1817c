"""
Evaluation cycle schemas.

POST /cron/evaluate-rules → CronEvaluationResponse
GET  /cron/evaluate-rules → CronStatusResponse
"""
from typing import Optional

from pydantic import BaseModel


class WorkerResultOut(BaseModel):
    processed: int
    succeeded: int
    failed: int
    triggered: int
    duration_ms: int
    errors: list[str]
    skipped: bool = False
    started_at: Optional[str] = None


class CronEvaluationResponse(BaseModel):
    success: bool
    timestamp: str
    result: WorkerResultOut


class CronConfigOut(BaseModel):
    batch_size: int
    interval_seconds: int
    default_cooldown_seconds: int
    frequency_enforcement: str


class CronStatusResponse(BaseModel):
    status: str
    is_running: bool
    last_result: Optional[WorkerResultOut] = None
    config: CronConfigOut
