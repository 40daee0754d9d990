from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
def health(request: Request):
    scheduler = getattr(request.app.state, "scheduler", None)
    return {"status": "ok", "scheduler_running": bool(scheduler and scheduler.running)}
