import logging

import psycopg
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from errors import InvalidRequest, StoreConnectionError
from models import (
    BidirectionalSyncRequest,
    ConnectionRequest,
    InspectRequest,
    PullRequest,
    SyncRequest,
)
from service_sync import SyncService
from settings import settings

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(title="Health Sync Backend")

# Routes stay thin: validation, connections and protocol rules live in
# the service so it can be exercised without HTTP.
svc = SyncService()


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message})


def _failure(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"success": False, "message": message})


@app.exception_handler(RequestValidationError)
async def invalid_body(request: Request, exc: RequestValidationError):
    # Malformed bodies are client errors (400), not FastAPI's default 422.
    first = exc.errors()[0] if exc.errors() else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"Invalid request: {where} {first.get('msg', '')}".strip()
    logger.warning("%s %s: %s", request.method, request.url.path, message)
    return _error(400, message)


@app.post("/api/database/test")
def test_connection(req: ConnectionRequest):
    try:
        message = svc.test_connection(req.connection_string, req.type)
        return {"success": True, "message": message, "type": req.type}
    except InvalidRequest as e:
        return _error(400, str(e))
    except (StoreConnectionError, psycopg.Error) as e:
        logger.error("PostgreSQL connection failed: %s", e)
        return _error(400, "Database connection failed. Please check your connection string.")
    except Exception:
        logger.exception("Database test error")
        return _error(500, "Connection test failed")


@app.post("/api/database/sync")
def sync(req: SyncRequest):
    try:
        counts = svc.push(req.connection_string, req.type, req.data)
        return {
            "success": True,
            "message": "Data synced successfully to your database!",
            "syncedCounts": counts.to_wire(),
        }
    except InvalidRequest as e:
        return _error(400, str(e))
    except Exception as e:
        logger.exception("Database sync failed")
        return _error(500, f"Sync failed: {e}")


@app.post("/api/database/pull")
def pull(req: PullRequest):
    try:
        counts, data = svc.pull(req.connection_string, req.type, req.last_sync_timestamp)
        return {
            "success": True,
            "message": f"Pull completed: received {counts.total()} items",
            "pullCounts": counts.to_wire(),
            "pulledData": data.to_payload(),
        }
    except InvalidRequest as e:
        return _failure(400, str(e))
    except Exception as e:
        logger.exception("Pull data error")
        return _failure(500, f"Pull failed: {e}")


@app.post("/api/database/bidirectional-sync")
def bidirectional_sync(req: BidirectionalSyncRequest):
    try:
        synced, pulled_counts, data = svc.bidirectional_sync(
            req.connection_string, req.type, req.local_data, req.last_sync_timestamp
        )
        return {
            "success": True,
            "message": "Bidirectional sync completed successfully",
            "syncedCounts": synced.to_wire(),
            "pullCounts": pulled_counts.to_wire(),
            "pulledData": data.to_payload(),
        }
    except InvalidRequest as e:
        return _failure(400, str(e))
    except Exception as e:
        logger.exception("Bidirectional sync error")
        return _failure(500, f"Sync failed: {e}")


@app.post("/api/database/inspect")
def inspect(req: InspectRequest):
    try:
        return svc.inspect(req.connection_string)
    except InvalidRequest as e:
        return _failure(400, str(e))
    except Exception as e:
        logger.exception("Database inspection error")
        return _failure(500, f"Inspection failed: {e}")
