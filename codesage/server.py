import sys
if sys.platform == "win32":
    import asyncio
    asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

import logging

from fastapi import FastAPI, HTTPException, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from . import config
from .analyzer import analyze_code, complexity_rating, detect_approach, quality_band, score_quality
from .coach import make_coach
from .interview import EMPTY_CODE_MESSAGE
from .metrics import estimate_metrics
from .problems import (
    PROBLEMS,
    get_next_problem,
    get_problem,
    get_random_problem,
    is_last_problem,
    list_problems,
)
from .session_registry import SessionRegistry, is_valid_session_id
from .ws_handler import websocket_chat as _ws_chat_handler

logger = logging.getLogger(__name__)

app = FastAPI(title="CodeSage")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

session_registry = SessionRegistry()

# Shared coach for stateless REST calls; sessions each get their own.
_complexity_coach = make_coach()


@app.on_event("startup")
async def startup_event():
    session_registry.start()
    logger.info(
        "CodeSage started with %d problems (demo mode: %s)", len(PROBLEMS), config.DEMO_MODE,
    )


@app.on_event("shutdown")
async def shutdown_event():
    await session_registry.stop()
    if _complexity_coach.llm is not None:
        await _complexity_coach.llm.shutdown()


# --- API Routes ---

class CodeRequest(BaseModel):
    code: str = Field(..., max_length=51200)


@app.get("/api/health")
async def api_health():
    return {
        "status": "ok",
        "demo_mode": config.DEMO_MODE,
        "problems": len(PROBLEMS),
        "sessions": len(session_registry),
    }


@app.get("/api/problems")
async def api_list_problems():
    return list_problems()


@app.get("/api/problems/random")
async def api_random_problem(difficulty: str | None = None, category: str | None = None):
    problem = get_random_problem(difficulty, category)
    if not problem:
        raise HTTPException(status_code=404, detail="No matching problem")
    return problem.model_dump(mode="json")


@app.get("/api/problems/{problem_id}")
async def api_get_problem(problem_id: str):
    problem = get_problem(problem_id)
    if not problem:
        raise HTTPException(status_code=404, detail="Problem not found")
    return problem.model_dump(mode="json")


@app.get("/api/problems/{problem_id}/next")
async def api_next_problem(problem_id: str):
    if not get_problem(problem_id):
        raise HTTPException(status_code=404, detail="Problem not found")
    nxt = get_next_problem(problem_id)
    return {
        "is_last": is_last_problem(problem_id),
        "problem": nxt.model_dump(mode="json") if nxt else None,
    }


@app.post("/api/analyze")
async def api_analyze(req: CodeRequest):
    analysis = analyze_code(req.code)
    quality = score_quality(req.code, analysis.complexity)
    return {
        "analysis": analysis.to_dict(),
        "approach": detect_approach(req.code).value,
        "quality": quality,
        "quality_band": quality_band(quality),
        "complexity_rating": complexity_rating(analysis.complexity),
    }


@app.post("/api/metrics")
async def api_metrics(req: CodeRequest):
    return estimate_metrics(req.code).to_dict()


@app.post("/api/complexity")
async def api_complexity(req: CodeRequest):
    if not req.code.strip():
        raise HTTPException(status_code=400, detail=EMPTY_CODE_MESSAGE)
    report = await _complexity_coach.analyze_complexity(req.code)
    return {**report.to_dict(), "markdown": report.to_markdown()}


@app.get("/api/sessions/{session_id}")
async def api_get_session(session_id: str):
    if not is_valid_session_id(session_id):
        raise HTTPException(status_code=400, detail="Invalid session ID format")
    session = await session_registry.get(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session.summary()


@app.websocket("/ws/chat")
async def websocket_chat(websocket: WebSocket):
    await _ws_chat_handler(websocket, registry=session_registry, coach_factory=make_coach)
