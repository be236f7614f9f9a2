"""
Printer Backend Simulation FastAPI Server
Stands in for a printer API endpoint: accepts POST /api/print, answers
GET /health and can be switched offline to exercise dispatch failures.
Run: uvicorn printer_sim:app --port 8001 --reload
"""

from fastapi import FastAPI, HTTPException, Header, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from typing import Dict, List, Optional
from datetime import date, datetime
import os
import uuid

from log_config import get_logger
from printer_client import PrintJobRequest

logger = get_logger("printer_sim")


def generate_delivery_number(printer_index: int, letter: str = "A", today: Optional[date] = None) -> str:
    """{LETTER}{YYYYMMDD}{printerIndex}"""
    today = today or date.today()
    return f"{letter}{today.strftime('%Y%m%d')}{printer_index}"


class PrinterBackendState:
    """In-memory job book of one simulated printer API"""

    def __init__(self):
        self.online = True
        self.jobs: Dict[str, dict] = {}
        self.order_jobs: Dict[str, str] = {}
        self.delivery_counters: Dict[tuple, int] = {}

    def next_delivery_number(self, printer_index: int) -> str:
        # letter cycles A..Z per printer per day
        today = date.today()
        key = (today, printer_index)
        count = self.delivery_counters.get(key, 0)
        self.delivery_counters[key] = count + 1
        return generate_delivery_number(printer_index, chr(ord("A") + count % 26), today)

    def reset(self):
        self.online = True
        self.jobs.clear()
        self.order_jobs.clear()
        self.delivery_counters.clear()


def create_sim_app(api_key: Optional[str] = None) -> FastAPI:
    app = FastAPI(title="Printer Backend Simulation API", version="1.0")
    state = PrinterBackendState()
    app.state.printer = state

    def check_api_key(x_api_key: Optional[str]):
        if api_key and x_api_key != api_key:
            raise HTTPException(status_code=401, detail="Invalid API key")

    def check_online():
        if not state.online:
            raise HTTPException(status_code=503, detail="Printer unavailable: offline")

    @app.get("/")
    def root():
        return {
            "message": "Printer Backend Simulation API v1.0",
            "online": state.online,
            "total_jobs": len(state.jobs)
        }

    @app.post("/api/print")
    async def submit_print_job(request: Request, x_api_key: Optional[str] = Header(default=None)):
        """Accept a print job in either the file-array or single-file form"""
        check_api_key(x_api_key)
        check_online()

        try:
            job = PrintJobRequest.model_validate(await request.json())
        except (ValidationError, ValueError) as e:
            logger.warning(f"Rejected invalid print payload: {e}")
            return JSONResponse(status_code=400, content={"success": False, "error": "Invalid print payload"})

        files: List[str] = job.file_urls or ([job.file_url] if job.file_url else [])
        if not files:
            return JSONResponse(status_code=400, content={"success": False, "error": "fileURLs or fileUrl is required"})

        if job.order_id and job.order_id in state.order_jobs:
            logger.info(f"Duplicate submission for order {job.order_id}")
            return {"success": False, "error": "Job already queued", "jobId": state.order_jobs[job.order_id]}

        job_id = f"JOB-{uuid.uuid4().hex[:12]}"
        delivery_number = state.next_delivery_number(job.printer_index)
        state.jobs[job_id] = {
            "job_id": job_id,
            "order_id": job.order_id,
            "printer_index": job.printer_index,
            "files": files,
            "printing_options": job.printing_options.model_dump(),
            "delivery_number": delivery_number,
            "queued_at": datetime.now().isoformat()
        }
        if job.order_id:
            state.order_jobs[job.order_id] = job_id

        logger.info(f"Job {job_id} queued on printer {job.printer_index}: {len(files)} file(s), "
                    f"{job.printing_options.copies}c {job.printing_options.color}")

        return {
            "success": True,
            "message": "Print job queued",
            "jobId": job_id,
            "deliveryNumber": delivery_number
        }

    @app.get("/jobs")
    def list_all_jobs(order_id: Optional[str] = None):
        jobs = list(state.jobs.values())
        if order_id:
            jobs = [j for j in jobs if j["order_id"] == order_id]
        return {"total_jobs": len(state.jobs), "jobs": jobs}

    @app.post("/offline")
    def go_offline():
        state.online = False
        logger.info("🔌 Printer backend switched offline")
        return {"online": state.online}

    @app.post("/online")
    def go_online():
        state.online = True
        logger.info("🔌 Printer backend switched online")
        return {"online": state.online}

    @app.post("/reset")
    def reset_simulation():
        state.reset()
        logger.info("🔄 Simulation reset completed")
        return {"message": "Simulation reset successfully"}

    @app.get("/health")
    def health_check():
        check_online()
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "queued_jobs": len(state.jobs),
            "api_version": "1.0"
        }

    return app


app = create_sim_app(os.getenv("PRINTER_API_KEY") or None)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
