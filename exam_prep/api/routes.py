# exam_prep/api/routes.py
import io
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse

from ..core.config import config
from ..core.exceptions import Forbidden
from ..core.utils import DateTimeUtils
from ..models.schemas import (
    StartSessionRequest, SelectAnswerRequest, NavigateRequest,
    FetchNewsRequest, GenerateTestRequest, ProviderKeyRequest
)
from ..services.session_service import SessionEngine, get_session_engine
from ..services.result_service import ResultService, get_result_service
from ..services.generation_service import GenerationService, get_generation_service
from ..services.content_service import ContentService, get_content_service

logger = logging.getLogger(__name__)

router = APIRouter()

# ==================== Dependencies ====================

def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller id as provided by the authentication layer"""
    if not x_user_id or not x_user_id.strip():
        raise Forbidden("Sign in required")
    return x_user_id.strip()

def require_admin(user_id: str = Depends(get_current_user_id)) -> str:
    if user_id not in config.ADMIN_USER_IDS:
        logger.warning(f"⚠️ Non-admin user {user_id} called an admin endpoint")
        raise Forbidden("Admin access required")
    return user_id

@router.get("/")
async def home():
    """Home endpoint"""
    return {
        "service": config.API_TITLE,
        "version": config.API_VERSION,
        "status": "operational"
    }

# ==================== Test sessions ====================

@router.post("/api/sessions")
async def start_session(body: StartSessionRequest,
                        user_id: str = Depends(get_current_user_id),
                        engine: SessionEngine = Depends(get_session_engine)):
    """Start a timed session on a mock test or previous paper"""
    session = engine.start(user_id, body.source_id, body.kind)
    return session.public_view()

@router.get("/api/sessions/{attempt_id}")
async def get_session(attempt_id: str,
                      user_id: str = Depends(get_current_user_id),
                      engine: SessionEngine = Depends(get_session_engine)):
    return engine.get_session(attempt_id, user_id).public_view()

@router.put("/api/sessions/{attempt_id}/answers")
async def select_answer(attempt_id: str, body: SelectAnswerRequest,
                        user_id: str = Depends(get_current_user_id),
                        engine: SessionEngine = Depends(get_session_engine)):
    session = engine.select_answer(attempt_id, user_id, body.question_id, body.option.strip().lower())
    return session.public_view()

@router.post("/api/sessions/{attempt_id}/marks/{question_id}")
async def toggle_mark(attempt_id: str, question_id: str,
                      user_id: str = Depends(get_current_user_id),
                      engine: SessionEngine = Depends(get_session_engine)):
    marked = engine.toggle_mark(attempt_id, user_id, question_id)
    return {"question_id": question_id, "marked": marked}

@router.post("/api/sessions/{attempt_id}/navigate")
async def navigate(attempt_id: str, body: NavigateRequest,
                   user_id: str = Depends(get_current_user_id),
                   engine: SessionEngine = Depends(get_session_engine)):
    return engine.navigate(attempt_id, user_id, body.index).public_view()

@router.post("/api/sessions/{attempt_id}/submit")
async def submit_session(attempt_id: str,
                         user_id: str = Depends(get_current_user_id),
                         engine: SessionEngine = Depends(get_session_engine)):
    """Submit the session; a failed submit keeps all answers for a retry"""
    return engine.submit(attempt_id, user_id)

# ==================== Results ====================

@router.get("/api/results/{attempt_id}")
def get_result(attempt_id: str,
               user_id: str = Depends(get_current_user_id),
               results: ResultService = Depends(get_result_service)):
    return results.load_result(attempt_id, user_id)

@router.get("/api/results/{attempt_id}/pdf")
def download_result_pdf(attempt_id: str,
                        user_id: str = Depends(get_current_user_id),
                        results: ResultService = Depends(get_result_service)):
    pdf_bytes = results.export_result_pdf(attempt_id, user_id)
    return StreamingResponse(
        io.BytesIO(pdf_bytes),
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename=result_{attempt_id}.pdf"}
    )

@router.get("/api/history")
def get_history(limit: int = Query(50, ge=1, le=200),
                user_id: str = Depends(get_current_user_id),
                results: ResultService = Depends(get_result_service)):
    history = results.list_history(user_id, limit)
    return {
        "count": len(history),
        "history": history,
        "timestamp": DateTimeUtils.get_current_timestamp()
    }

# ==================== Catalogue ====================

@router.get("/api/tests")
def list_tests(content: ContentService = Depends(get_content_service)):
    tests = content.list_tests()
    return {"count": len(tests), "tests": tests}

@router.get("/api/papers")
def list_papers(exam_type: Optional[str] = None,
                content: ContentService = Depends(get_content_service)):
    papers = content.list_papers(exam_type)
    return {"count": len(papers), "papers": papers}

# ==================== Generation functions ====================

# Plain def routes run in the threadpool, off the loop that drives session clocks
@router.post("/api/functions/fetch-news")
def fetch_news(body: FetchNewsRequest,
               admin_id: str = Depends(require_admin),
               generation: GenerationService = Depends(get_generation_service)):
    logger.info(f"📰 fetch-news triggered by {admin_id}")
    return generation.fetch_news(body.language, body.category, body.country)

@router.post("/api/functions/generate-test")
def generate_test(body: GenerateTestRequest,
                  admin_id: str = Depends(require_admin),
                  generation: GenerationService = Depends(get_generation_service)):
    logger.info(f"🧠 generate-test triggered by {admin_id}")
    return generation.generate_test(
        body.subject, body.difficulty, body.questionsCount, body.examType, body.language
    )

# ==================== Admin ====================

@router.post("/api/admin/papers/import")
async def import_paper(request: Request,
                       exam_type: str = Query(..., min_length=1),
                       paper_name: str = Query(..., min_length=1),
                       year: int = Query(..., ge=1900, le=2100),
                       duration_minutes: Optional[int] = Query(None, ge=1),
                       admin_id: str = Depends(require_admin),
                       content: ContentService = Depends(get_content_service)):
    """Import a previous paper from a CSV request body"""
    raw = await request.body()
    try:
        csv_text = raw.decode("utf-8")
    except UnicodeDecodeError:
        raise ValueError("CSV must be UTF-8 encoded")

    logger.info(f"📥 Paper import '{paper_name}' by {admin_id}")
    return await run_in_threadpool(
        content.import_paper_csv, csv_text, exam_type, paper_name, year, duration_minutes
    )

@router.put("/api/admin/settings/{key}")
def set_setting(key: str, body: ProviderKeyRequest,
                admin_id: str = Depends(require_admin),
                content: ContentService = Depends(get_content_service)):
    return content.set_provider_key(key, body.value, updated_by=admin_id)

@router.delete("/api/cleanup")
async def cleanup_sessions(admin_id: str = Depends(require_admin),
                           engine: SessionEngine = Depends(get_session_engine)):
    """Evict completed and abandoned sessions"""
    removed = engine.cleanup_expired_sessions()
    return {"removed": removed, "active_sessions": len(engine.sessions)}
