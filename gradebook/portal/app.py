"""
FastAPI JSON API over the gradebook.

Endpoints:
  - course list
  - one student's course grade
  - the instructor gradebook matrix with course statistics
  - XLSX export of the gradebook
  - updating a course's grading weights and letter scale
  - batch grade updates with an audit trail
"""

from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from gradebook.database import db_manager
from gradebook.exceptions import (
    CourseNotFoundError,
    InvalidGradeUpdateError,
    InvalidGradingSettingsError,
    StudentNotFoundError,
)
from gradebook.utils.logger import get_logger

logger = get_logger(__name__)

app = FastAPI(title="Gradebook Portal", version="1.0.0")

_XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class ScaleBandIn(BaseModel):
    label: str
    min: float = Field(ge=0, le=100)


class GradingSettingsIn(BaseModel):
    weights: Optional[Dict[str, float]] = None
    scale: Optional[List[ScaleBandIn]] = None
    is_weighted: Optional[bool] = None


class GradesUpdateIn(BaseModel):
    grades: Dict[int, Dict[int, Optional[float]]]
    changed_by: Optional[str] = None


@app.get("/api/courses")
async def api_courses():
    """API: List all courses."""
    return JSONResponse(db_manager.get_all_courses())


@app.get("/api/courses/{course_id}/students/{student_id}/grade")
def api_student_grade(course_id: int, student_id: int):
    """API: One student's grade in one course."""
    try:
        result = db_manager.calculate_student_grade(student_id, course_id)
    except (CourseNotFoundError, StudentNotFoundError) as exc:
        raise HTTPException(status_code=404, detail=exc.message)
    return result.to_dict()


@app.get("/api/courses/{course_id}/gradebook")
def api_gradebook(course_id: int):
    """API: Student × item matrix plus course statistics."""
    try:
        gradebook = db_manager.get_course_gradebook(course_id)
    except CourseNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message)
    payload = gradebook.to_dict()
    payload["statistics"] = db_manager.get_course_stats(gradebook)
    return payload


@app.get("/api/courses/{course_id}/gradebook/export")
def api_gradebook_export(course_id: int):
    """API: Download the gradebook as an Excel workbook."""
    try:
        buf = db_manager.export_to_excel(course_id)
    except CourseNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message)
    return StreamingResponse(
        buf,
        media_type=_XLSX,
        headers={"Content-Disposition": f'attachment; filename="gradebook_{course_id}.xlsx"'},
    )


@app.put("/api/courses/{course_id}/grading")
def api_update_grading(course_id: int, settings: GradingSettingsIn):
    """API: Save category weights and letter scale for a course."""
    scale = [band.model_dump() for band in settings.scale] if settings.scale else None
    try:
        warnings = db_manager.update_grading_settings(
            course_id, settings.weights, scale, settings.is_weighted
        )
    except CourseNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message)
    except InvalidGradingSettingsError as exc:
        raise HTTPException(status_code=400, detail=exc.details.get("errors", exc.message))
    return {"course_id": course_id, "warnings": warnings}


@app.patch("/api/courses/{course_id}/grades")
def api_update_grades(course_id: int, update: GradesUpdateIn):
    """API: Batch update assignment grades, ``{student_id: {assignment_id: grade}}``."""
    try:
        changed = db_manager.batch_update_grades(course_id, update.grades, update.changed_by)
    except CourseNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message)
    except InvalidGradeUpdateError as exc:
        raise HTTPException(status_code=400, detail=exc.details.get("errors", exc.message))
    return {"course_id": course_id, "changed": changed}


@app.get("/api/courses/{course_id}/grades/audit")
def api_grade_audit(course_id: int):
    """API: Grade change history for a course."""
    try:
        return db_manager.get_grade_audit_log(course_id)
    except CourseNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message)


def create_app(config=None):
    """Factory function to create and configure the FastAPI app.

    Args:
        config: Optional Config instance. If None, uses singleton.

    Returns:
        Configured FastAPI app instance.
    """
    if config is not None:
        app.state.config = config
    db_manager.init_db()
    return app


def launch_portal(host: str = "0.0.0.0", port: int = 8000):
    """Launch the FastAPI portal using uvicorn."""
    import uvicorn
    logger.info("Starting web portal on %s:%d", host, port)
    uvicorn.run(create_app(), host=host, port=port)
