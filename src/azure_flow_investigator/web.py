"""
Web API for Azure Flow Log Investigator.
"""

import gzip
import json
import logging
import re
import threading
import zlib
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from .config import DefaultConfiguration, ExclusionConfig
from .exclusion_filter import (
    CancelSignal,
    ExclusionFilter,
    FilterCancelledError,
    FilterProgress,
    ProgressCallback,
)
from .logging_utils import (
    generate_query_id,
    get_query_result,
    log_query_end,
    log_query_start,
    setup_logger,
)
from .parser import FlowLogDocumentReader

logger = logging.getLogger(__name__)


@dataclass
class FilterRequest:
    """Parameters for one parse-and-filter run."""

    documents: List[tuple[str, Any]]
    exclude_ips: List[str] = field(default_factory=list)
    exclude_cidrs: List[str] = field(default_factory=list)
    limit: int = DefaultConfiguration.DEFAULT_LIMIT
    skipped_files: List[str] = field(default_factory=list)
    query_id: str = field(default_factory=generate_query_id)


class UploadParser:
    """Turns uploaded blobs and form fields into a FilterRequest."""

    ENTRY_SEPARATORS = re.compile(r"[\s,;]+")

    @classmethod
    def split_entries(cls, text: Optional[str]) -> List[str]:
        """Split a comma, semicolon or newline separated form field."""
        if not text:
            return []
        return [entry for entry in cls.ENTRY_SEPARATORS.split(text) if entry]

    @staticmethod
    def decode_document(file_name: str, content: bytes) -> Any:
        if file_name.endswith(".gz"):
            content = gzip.decompress(content)
        return json.loads(content.decode("utf-8-sig"))

    @classmethod
    async def build_request(
        cls,
        files: List[UploadFile],
        exclude_ips: str,
        exclude_cidrs: str,
        limit: int,
    ) -> FilterRequest:
        exclusions = ExclusionConfig(
            ips=cls.split_entries(exclude_ips), cidrs=cls.split_entries(exclude_cidrs)
        )
        try:
            exclusions.validate()
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        if limit <= 0:
            raise HTTPException(status_code=400, detail="Limit must be positive")

        request = FilterRequest(
            documents=[],
            exclude_ips=exclusions.ips,
            exclude_cidrs=exclusions.cidrs,
            limit=limit,
        )
        for upload in files:
            file_name = upload.filename or "upload"
            content = await upload.read()
            try:
                request.documents.append((file_name, cls.decode_document(file_name, content)))
            except (OSError, ValueError, EOFError, zlib.error) as e:
                logger.warning(f"Skipping unreadable upload {file_name}: {e}")
                request.skipped_files.append(file_name)
        return request


class FilterService:
    """Parses uploaded documents and applies the exclusion filter."""

    def __init__(self):
        self.document_reader = FlowLogDocumentReader()

    def run(
        self,
        request: FilterRequest,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[CancelSignal] = None,
    ) -> Dict[str, Any]:
        """Run the full pipeline and return a JSON-ready result."""
        if cancel_event is not None and cancel_event.is_set():
            raise FilterCancelledError(0, 0)

        records = self.document_reader.parse_documents(request.documents)
        result = ExclusionFilter(
            request.exclude_ips,
            request.exclude_cidrs,
            progress_callback=progress_callback,
            cancel_event=cancel_event,
        ).partition(records)

        return {
            "query_id": request.query_id,
            "files": [source for source, _ in request.documents],
            "skipped_files": request.skipped_files,
            "total_records": result.total,
            "kept": len(result.kept),
            "excluded": len(result.excluded),
            "records": [record.to_dict() for record in result.kept[: request.limit]],
        }


@dataclass
class FilterJob:
    """State of a background filter run."""

    job_id: str
    status: str = "pending"
    progress: FilterProgress = field(
        default_factory=lambda: FilterProgress(0, 0, 0, "Queued")
    )
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    cancel_event: threading.Event = field(default_factory=threading.Event)
    future: Optional[Future] = None

    def update(self, progress: FilterProgress) -> None:
        # Replaced as one object so readers never see a half-applied report
        self.progress = progress

    def to_dict(self) -> Dict[str, Any]:
        progress = self.progress
        data: Dict[str, Any] = {
            "job_id": self.job_id,
            "status": self.status,
            "message": progress.message,
            "processed": progress.processed,
            "total": progress.total,
            "excluded": progress.excluded,
        }
        if self.result is not None:
            data["result"] = self.result
        if self.error is not None:
            data["error"] = self.error
        return data


class FilterJobManager:
    """Runs filter requests on worker threads and tracks their progress.

    Only the most recent ``max_finished`` finished jobs are retained; older
    ones are forgotten and their status can no longer be queried.
    """

    def __init__(
        self,
        max_workers: int = DefaultConfiguration.DEFAULT_WORKERS,
        max_finished: int = DefaultConfiguration.DEFAULT_MAX_FINISHED_JOBS,
    ):
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="flow-filter"
        )
        self._jobs: Dict[str, FilterJob] = {}
        self._finished: OrderedDict[str, None] = OrderedDict()
        self._lock = threading.Lock()
        self.max_finished = max_finished
        self.service = FilterService()

    def submit(self, request: FilterRequest) -> FilterJob:
        job = FilterJob(job_id=request.query_id)
        with self._lock:
            self._jobs[job.job_id] = job
        job.future = self._executor.submit(self._run, job, request)
        return job

    def get(self, job_id: str) -> Optional[FilterJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def cancel(self, job_id: str) -> bool:
        if (job := self.get(job_id)) is None:
            return False
        job.cancel_event.set()
        return True

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[FilterJob]:
        """Block until a job finishes; mainly useful for tests and scripts."""
        if (job := self.get(job_id)) is None:
            return None
        if job.future is not None:
            job.future.result(timeout=timeout)
        return job

    def shutdown(self) -> None:
        with self._lock:
            for job in self._jobs.values():
                job.cancel_event.set()
        self._executor.shutdown(wait=False)

    def _run(self, job: FilterJob, request: FilterRequest) -> None:
        job.status = "running"
        log_query_start(
            logger,
            job.job_id,
            files=len(request.documents),
            exclude_ips=len(request.exclude_ips),
            exclude_cidrs=len(request.exclude_cidrs),
        )
        try:
            job.result = self.service.run(request, job.update, job.cancel_event)
            job.status = "completed"
            log_query_end(
                logger, job.job_id, True, result_data=job.result, kept=job.result["kept"]
            )
        except FilterCancelledError as e:
            job.update(
                FilterProgress(e.processed, job.progress.total, e.excluded, str(e))
            )
            job.status = "cancelled"
            log_query_end(logger, job.job_id, False, error=str(e))
        except Exception as e:
            logger.exception(f"Filter job {job.job_id} failed")
            job.error = str(e)
            job.status = "failed"
            log_query_end(logger, job.job_id, False, error=str(e))
        finally:
            self._retire(job)

    def _retire(self, job: FilterJob) -> None:
        """Record a finished job and forget the oldest beyond the bound."""
        with self._lock:
            self._finished[job.job_id] = None
            while len(self._finished) > self.max_finished:
                stale_id, _ = self._finished.popitem(last=False)
                self._jobs.pop(stale_id, None)
                logger.debug(f"Evicted finished filter job {stale_id}")


class WebApplicationFactory:
    """Factory for creating and configuring the FastAPI application."""

    @staticmethod
    def create_app(job_manager: Optional[FilterJobManager] = None) -> FastAPI:
        """Create and configure FastAPI application."""
        setup_logger()
        job_manager = job_manager or FilterJobManager()

        @asynccontextmanager
        async def lifespan(app: FastAPI) -> AsyncIterator[None]:
            yield
            job_manager.shutdown()

        app = FastAPI(
            title="Azure Flow Log Investigator", version="1.0.0", lifespan=lifespan
        )
        app.state.job_manager = job_manager

        RouteRegistrar.register_routes(app, job_manager)

        return app


class RouteRegistrar:
    """Handles registration of web routes."""

    @staticmethod
    def register_routes(app: FastAPI, job_manager: FilterJobManager) -> None:
        """Register all application routes."""

        @app.get("/api/test")
        async def test_endpoint() -> Any:
            """Test endpoint to verify API is working."""
            return {"status": "ok", "message": "API is working"}

        @app.get("/api/query/{query_id}")
        async def get_query_result_endpoint(query_id: str) -> Any:
            """Retrieve stored query result by ID."""
            result = get_query_result(query_id)
            if result:
                return JSONResponse(content=result)
            raise HTTPException(status_code=404, detail="Query result not found")

        @app.post("/api/filter")
        async def filter_logs(
            files: List[UploadFile] = File(...),
            exclude_ips: str = Form(""),
            exclude_cidrs: str = Form(""),
            limit: int = Form(DefaultConfiguration.DEFAULT_LIMIT),
        ) -> Any:
            """Parse uploaded flow-log blobs and return the records left after exclusions."""
            request = await UploadParser.build_request(
                files, exclude_ips, exclude_cidrs, limit
            )
            log_query_start(
                logger,
                request.query_id,
                files=len(request.documents),
                exclude_ips=len(request.exclude_ips),
                exclude_cidrs=len(request.exclude_cidrs),
            )

            try:
                results = await run_in_threadpool(job_manager.service.run, request)
            except Exception as e:
                log_query_end(logger, request.query_id, False, error=str(e))
                raise HTTPException(status_code=500, detail=str(e))

            log_query_end(
                logger, request.query_id, True, result_data=results, kept=results["kept"]
            )
            return JSONResponse(content=results)

        @app.post("/api/jobs", status_code=202)
        async def start_job(
            files: List[UploadFile] = File(...),
            exclude_ips: str = Form(""),
            exclude_cidrs: str = Form(""),
            limit: int = Form(DefaultConfiguration.DEFAULT_LIMIT),
        ) -> Any:
            """Start a background filter job and return its ID."""
            request = await UploadParser.build_request(
                files, exclude_ips, exclude_cidrs, limit
            )
            job = job_manager.submit(request)
            return {"job_id": job.job_id, "status": job.status}

        @app.get("/api/jobs/{job_id}")
        async def get_job(job_id: str) -> Any:
            """Report progress of a background filter job."""
            if (job := job_manager.get(job_id)) is None:
                raise HTTPException(status_code=404, detail="Job not found")
            return job.to_dict()

        @app.delete("/api/jobs/{job_id}")
        async def cancel_job(job_id: str) -> Any:
            """Request cancellation of a background filter job."""
            if not job_manager.cancel(job_id):
                raise HTTPException(status_code=404, detail="Job not found")
            return {"job_id": job_id, "cancel_requested": True}


def run_server(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Run the web server."""
    print("Starting Azure Flow Log Investigator API...")
    print(f"API available at: http://localhost:{port}/docs")
    uvicorn.run(WebApplicationFactory.create_app(), host=host, port=port)
