"""
Print Dispatch Service
Runs the print queue scheduler and the printer API retry queue behind a thin
FastAPI surface for dashboards and admin tooling.
"""
from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from dataclasses import dataclass
from typing import Optional
from datetime import datetime
from contextlib import asynccontextmanager
from sqlalchemy import select, text
from sqlalchemy.orm import Session

from config import load_dispatch_config, load_scheduler_config
from database import get_db, init_db
from errors import InvalidTransitionError
from log_config import configure_logging, get_logger
from models import Printer, PrintJob, PrintJobStatusEnum
from print_queue import PrintQueueManager, dispatch_print_procedure
from printer_client import PrinterClient, PrintJobRequest
from retry_queue import RetryQueue

logger = get_logger("backend")

# ==================== Service Wiring ====================

@dataclass
class Services:
    client: PrinterClient
    retry_queue: RetryQueue
    scheduler: PrintQueueManager


def build_services(session_factory=None) -> Services:
    """Wire retry queue, printer client and scheduler from the environment"""
    dispatch_config = load_dispatch_config()
    scheduler_config = load_scheduler_config()

    retry_queue = RetryQueue.from_config(dispatch_config)
    client = PrinterClient(dispatch_config, retry_queue=retry_queue)

    print_procedure = dispatch_print_procedure(client) if dispatch_config.endpoints else None
    scheduler = PrintQueueManager(
        scheduler_config,
        session_factory=session_factory,
        print_procedure=print_procedure,
    )
    return Services(client=client, retry_queue=retry_queue, scheduler=scheduler)

# ==================== Lifespan Management ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize all systems on startup"""
    configure_logging("print_dispatch.log")
    logger.info("🚀 Starting Print Dispatch Service...")

    try:
        init_db()
        logger.info("✅ Database initialized")
    except Exception as e:
        logger.error(f"❌ Database init failed: {e}")
        raise

    services = getattr(app.state, "services", None) or build_services()
    app.state.services = services

    services.retry_queue.start()
    if services.scheduler.config.auto_start:
        await services.scheduler.start()

    yield

    logger.info("🛑 Shutting down Print Dispatch Service...")
    await services.scheduler.stop()
    await services.retry_queue.stop()

# ==================== FastAPI App ====================

app = FastAPI(
    title="Print Dispatch Service",
    version="1.0",
    description="Print queue scheduler and printer API dispatch with retry",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Print services not initialized")
    return services

# ==================== API Endpoints ====================

@app.get("/")
def root(request: Request):
    services = getattr(request.app.state, "services", None)
    return {
        "service": "Print Dispatch Service",
        "version": "1.0",
        "status": {
            "scheduler_running": bool(services and services.scheduler.is_running),
            "retry_queue_running": bool(services and services.retry_queue.is_running),
            "printer_endpoints": services.client.endpoints if services else []
        }
    }


@app.get("/system/db-health")
def check_db_health(db: Session = Depends(get_db)):
    """Check database health and connectivity"""
    try:
        db.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "database": "connected",
            "printers_count": db.query(Printer).count(),
            "print_jobs_count": db.query(PrintJob).count(),
            "timestamp": datetime.now().isoformat()
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": "disconnected",
            "error": str(e),
            "timestamp": datetime.now().isoformat()
        }

# ==================== Print Queue ====================

@app.get("/printing/queue/status")
def queue_status(services: Services = Depends(get_services)):
    status = services.scheduler.get_queue_status().to_dict()
    status["running"] = services.scheduler.is_running
    return status


@app.post("/printing/queue/start")
async def start_queue(services: Services = Depends(get_services)):
    started = await services.scheduler.start()
    return {"started": started, "running": services.scheduler.is_running}


@app.post("/printing/queue/stop")
async def stop_queue(services: Services = Depends(get_services)):
    await services.scheduler.stop()
    return {"running": services.scheduler.is_running}


@app.post("/printing/queue/process")
async def process_queue_once(services: Services = Depends(get_services)):
    """Run one scheduling tick now"""
    assigned = await services.scheduler.process_queue()
    return {"assigned": assigned}


@app.get("/printing/jobs")
def list_print_jobs(status: Optional[PrintJobStatusEnum] = None, limit: int = 50,
                    db: Session = Depends(get_db)):
    query = select(PrintJob).order_by(PrintJob.created_at.desc()).limit(max(1, min(limit, 500)))
    if status is not None:
        query = query.where(PrintJob.status == status)

    jobs = db.execute(query).scalars().all()
    return {
        "total": len(jobs),
        "jobs": [
            {
                "id": job.id,
                "order_id": job.order_id,
                "order_number": job.order_number,
                "status": job.status.value if job.status else None,
                "priority": job.priority,
                "printer_name": job.printer_name,
                "retry_count": job.retry_count,
                "max_retries": job.max_retries,
                "error_message": job.error_message,
                "created_at": job.created_at.isoformat() if job.created_at else None,
                "started_at": job.started_at.isoformat() if job.started_at else None,
                "completed_at": job.completed_at.isoformat() if job.completed_at else None
            }
            for job in jobs
        ]
    }


@app.post("/printing/jobs/{job_id}/cancel")
def cancel_print_job(job_id: str, services: Services = Depends(get_services)):
    try:
        cancelled = services.scheduler.cancel_job(job_id)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))

    if not cancelled:
        raise HTTPException(status_code=404, detail="Print job not found")
    return {"message": "Print job cancelled", "job_id": job_id}

# ==================== Printer API Dispatch ====================

@app.post("/printing/dispatch")
async def dispatch_print_job(request: PrintJobRequest, services: Services = Depends(get_services)):
    """Send a print job straight to the printer API (queued for retry on failure)"""
    result = await services.client.send(request)
    return result.to_dict()


@app.get("/printing/retry-queue")
def retry_queue_status(services: Services = Depends(get_services)):
    status = services.client.get_retry_queue_status()
    status["running"] = services.retry_queue.is_running
    return status


@app.post("/printing/retry-queue/drain")
async def drain_retry_queue(services: Services = Depends(get_services)):
    report = await services.retry_queue.drain()
    return {
        "attempted": report.attempted,
        "delivered": report.delivered,
        "dropped_duplicates": report.dropped_duplicates,
        "requeued": report.requeued,
        "skipped": report.skipped
    }


@app.get("/printing/endpoints/{printer_index}/health")
async def printer_endpoint_health(printer_index: int, services: Services = Depends(get_services)):
    if printer_index < 1:
        raise HTTPException(status_code=400, detail="printer_index must be >= 1")
    return await services.client.check_health(printer_index)

# ==================== Printers ====================

@app.get("/printers")
def list_printers(db: Session = Depends(get_db)):
    printers = db.execute(select(Printer).order_by(Printer.name.asc())).scalars().all()
    return {
        "total": len(printers),
        "printers": [
            {
                "id": p.id,
                "name": p.name,
                "status": p.status.value if p.status else None,
                "is_active": p.is_active,
                "auto_print_enabled": p.auto_print_enabled,
                "current_job_id": p.current_job_id,
                "queue_length": p.queue_length,
                "total_pages_printed": p.total_pages_printed,
                "endpoint_index": p.endpoint_index,
                "capabilities": {
                    "supported_page_sizes": sorted(p.capabilities.supported_page_sizes),
                    "supports_color": p.capabilities.supports_color,
                    "supports_duplex": p.capabilities.supports_duplex,
                    "max_copies": p.capabilities.max_copies,
                    "supported_file_types": sorted(p.capabilities.supported_file_types)
                }
            }
            for p in printers
        ]
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
