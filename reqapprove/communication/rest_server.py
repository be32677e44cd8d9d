"""
Action REST Server

FastAPI server exposing:
- GET  <action path>  stakeholder approve/deny links (always an HTML page)
- POST /submissions   row-created trigger from the request form
- GET  /health        liveness
"""

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping
from urllib.parse import urlparse
import asyncio
import logging
import time

import uvicorn

from reqapprove.datastore.models import Decision, Stage
from reqapprove.errors import (
    ApprovalError, HeaderNotFound, InvalidRequest, InvalidToken, MalformedRow, RowNotFound
)
from reqapprove.communication.identity import IdentityProvider
from reqapprove.monitoring.metrics import (
    start_metrics_server,
    track_action_failure,
    track_rest_error,
    track_rest_latency,
    track_rest_request
)
from reqapprove.notifications.templates import render
from reqapprove.utils.config_loader import WorkflowConfig, is_valid_email
from reqapprove.workflow.approval_engine import ApprovalStateMachine
from reqapprove.workflow.ingest import SubmissionIngest


ACTION_RESULT_TEMPLATE = "action_result.html.j2"
GENERIC_ERROR_MESSAGE = ApprovalError.user_message


@dataclass
class ActionRequest:
    """Parsed action-link parameters"""
    row_id: int
    stage: Stage
    decision: Decision
    approver: str
    token: str


def parse_action_params(params: Mapping[str, str]) -> ActionRequest:
    """
    Parse and validate the action link's query parameters.

    Raises:
        InvalidRequest: Any parameter missing or malformed
    """
    missing = [
        name for name in ("row", "stage", "decision", "approver", "token")
        if not (params.get(name) or "").strip()
    ]
    if missing:
        raise InvalidRequest(f"Missing parameters: {missing}")

    try:
        row_id = int(params["row"])
        stage = Stage(int(params["stage"]))
    except ValueError:
        raise InvalidRequest(
            f"Malformed row/stage: row={params['row']!r} stage={params['stage']!r}"
        ) from None
    if row_id <= 0:
        raise InvalidRequest(f"Row id must be positive, got {row_id}")

    decision_value = params["decision"].strip()
    if decision_value not in (Decision.APPROVED.value, Decision.DENIED.value):
        raise InvalidRequest(f"Unknown decision: {decision_value!r}")

    approver = params["approver"].strip().lower()
    if not is_valid_email(approver):
        raise InvalidRequest(f"Malformed approver email: {approver!r}")

    return ActionRequest(
        row_id=row_id,
        stage=stage,
        decision=Decision(decision_value),
        approver=approver,
        token=params["token"].strip()
    )


def render_result_page(heading: str, message: str, success: bool) -> HTMLResponse:
    """Result pages are always HTTP 200; success is conveyed in the content"""
    html = render(ACTION_RESULT_TEMPLATE, heading=heading, message=message, success=success)
    return HTMLResponse(content=html, status_code=200)


class ActionServer:
    """
    FastAPI server for the approval workflow.

    The action handler is a plain (sync) function, so FastAPI runs it in
    its threadpool and concurrent clicks contend on the document lock
    rather than blocking the event loop.
    """

    def __init__(
        self,
        config: WorkflowConfig,
        machine: ApprovalStateMachine,
        ingest: SubmissionIngest,
        identity: IdentityProvider,
        host: str = "127.0.0.1",
        port: int = 8080,
        enable_metrics: bool = False,
        metrics_port: int = 9090
    ):
        """
        Initialize the server.

        Args:
            config: Workflow configuration; base_url's path is the action route
            machine: Approval state machine
            ingest: Submission ingest for the row-created trigger
            identity: Resolves the acting user's email from the request
            host: Host to bind to
            port: Port to bind to
            enable_metrics: Start the Prometheus exporter
            metrics_port: Prometheus exporter port
        """
        self.config = config
        self.machine = machine
        self.ingest = ingest
        self.identity = identity
        self.host = host
        self.port = port
        self.action_path = urlparse(config.base_url).path or "/action"
        self.logger = logging.getLogger(__name__)

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            self.logger.info(f"Approval server starting on {host}:{port}")
            yield
            self.logger.info("Approval server shutting down")

        self.app = FastAPI(
            title="Requisition Approvals",
            description="Two-stage email approval workflow",
            version="1.0.0",
            lifespan=lifespan
        )

        if enable_metrics:
            start_metrics_server(metrics_port)

        self._register_middlewares()
        self._register_routes()

    def _register_middlewares(self):
        """Register HTTP middleware for metrics."""

        @self.app.middleware("http")
        async def metrics_middleware(request: Request, call_next):
            start_time = time.monotonic()
            method = request.method
            path = request.url.path

            try:
                response = await call_next(request)
                track_rest_request(method, path, str(response.status_code))
                return response
            except Exception as exc:
                track_rest_error(method, path, type(exc).__name__)
                raise
            finally:
                track_rest_latency(method, path, time.monotonic() - start_time)

    def _register_routes(self):

        @self.app.get(self.action_path, response_class=HTMLResponse)
        def handle_action(request: Request):
            """Stakeholder clicked an approve/deny link"""
            return self.process_action(request)

        @self.app.post("/submissions")
        async def handle_submission(request: Request):
            """Row-created trigger: JSON object of header -> value"""
            try:
                body = await request.json()
            except ValueError:
                return JSONResponse(status_code=400, content={"error": "Body must be JSON"})

            if not isinstance(body, dict) or not body:
                return JSONResponse(status_code=400, content={"error": "Body must be a non-empty JSON object"})

            # Store and mail I/O is blocking
            try:
                result = await asyncio.to_thread(self.ingest.submit, body)
            except InvalidRequest as exc:
                self.logger.warning(f"Submission rejected: {exc}")
                return JSONResponse(status_code=400, content={"error": str(exc)})
            return result

        @self.app.get("/health")
        async def health_check():
            return {
                "status": "healthy",
                "stakeholders": len(self.config.stakeholders),
                "lock_held": self.machine.lock.locked(),
                "timestamp": datetime.now(timezone.utc).isoformat()
            }

    def process_action(self, request: Request) -> HTMLResponse:
        """
        Handle one action click. Never raises: every failure becomes an
        error page.
        """
        try:
            action = parse_action_params(request.query_params)
            acting_email = self.identity.resolve(request)

            outcome = self.machine.handle_decision(
                row_id=action.row_id,
                stage=action.stage,
                decision=action.decision,
                approver_email=action.approver,
                token=action.token,
                acting_email=acting_email
            )
        except (HeaderNotFound, MalformedRow) as exc:
            track_action_failure(type(exc).__name__)
            self.logger.error(f"Sheet data error while handling action: {exc}")
            return render_result_page("Request failed", exc.user_message, success=False)
        except RowNotFound as exc:
            track_action_failure(type(exc).__name__)
            self.logger.warning(f"Action rejected: {exc}")
            return render_result_page("Request failed", InvalidToken.user_message, success=False)
        except ApprovalError as exc:
            track_action_failure(type(exc).__name__)
            self.logger.warning(f"Action rejected ({type(exc).__name__}): {exc}")
            return render_result_page("Request failed", exc.user_message, success=False)
        except Exception as exc:
            track_action_failure(type(exc).__name__)
            self.logger.error(f"Unexpected error handling action: {exc}", exc_info=True)
            return render_result_page("Request failed", GENERIC_ERROR_MESSAGE, success=False)

        return render_result_page(
            "Decision recorded",
            f"Your {outcome.stage.ordinal}-stage decision "
            f"'{outcome.decision.value}' for requisition #{outcome.row_id} has been recorded.",
            success=True
        )

    async def start(self):
        """Start the FastAPI server (async)"""
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level="info",
            access_log=True
        )
        server = uvicorn.Server(config)

        self.logger.info(f"Starting approval server on http://{self.host}:{self.port}")
        await server.serve()
