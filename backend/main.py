import logging
import os
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Depends, UploadFile, File, Form, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import (
    ANNOUNCEMENT_OWNER, CORS_ORIGINS, HOST, LOG_LEVEL, MAX_IMAGES, PORT, UPLOAD_DIR, UPLOAD_URL_PREFIX,
)
from database import (
    ACTIVITY, ANNOUNCEMENT, ATTENDANCE, count_distinct, count_documents, create_document, get_db,
    get_documents, sum_field,
)
from reports import XLSX_MEDIA_TYPE, records_workbook, summary_pdf
from schemas import (
    ActivityCreated, ActivityIn, ActivityOut, AnnouncementCreated, AnnouncementIn, AnnouncementOut,
    AttendanceCreated, AttendanceIn, AttendanceOut, DashboardSummary,
)
from uploads import UploadRejected, UploadStore, pair_images

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="5S Activity Tracker API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Uploaded images are stored on local disk and served back by path
os.makedirs(UPLOAD_DIR, exist_ok=True)
app.mount(UPLOAD_URL_PREFIX, StaticFiles(directory=UPLOAD_DIR), name="uploads")


def get_upload_store() -> UploadStore:
    return UploadStore(UPLOAD_DIR)


def error_messages(errors: List[Dict[str, Any]]) -> List[str]:
    messages = []
    for e in errors:
        loc = list(e.get("loc", ()))
        if loc and loc[0] in ("body", "query", "form"):
            loc = loc[1:]
        field = ".".join(str(p) for p in loc)
        messages.append(f"{field}: {e['msg']}" if field else e["msg"])
    return messages


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Invalid request to %s: %s", request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"detail": error_messages(exc.errors())})


def records_filter(division: Optional[str] = None, zone: Optional[str] = None) -> Dict[str, Any]:
    """Exact division, case-insensitive literal substring of zone."""
    filter_q: Dict[str, Any] = {}
    if division:
        filter_q["division"] = division
    if zone:
        filter_q["zone"] = {"$regex": re.escape(zone), "$options": "i"}
    return filter_q


def compute_summary(db: Database) -> DashboardSummary:
    return DashboardSummary(
        totalActivities=sum_field(db, ACTIVITY, "numOfActivities"),
        totalUsers=count_distinct(db, ACTIVITY, "userName"),
        totalAnnouncements=count_documents(db, ANNOUNCEMENT),
    )

# Health
@app.get("/test")
def test():
    return {"status": "ok"}

# Activities
@app.post("/add-data", response_model=ActivityCreated, status_code=201)
async def add_data(
    date: str = Form(...),
    time: str = Form(...),
    division: str = Form(...),
    zone: str = Form(...),
    userName: str = Form(...),
    numOfActivities: str = Form(...),
    images: Optional[List[UploadFile]] = File(None),
    db: Database = Depends(get_db),
    store: UploadStore = Depends(get_upload_store),
):
    try:
        payload = ActivityIn(
            date=date, time=time, division=division, zone=zone,
            userName=userName, numOfActivities=numOfActivities,
        )
    except ValidationError as exc:
        logger.warning("Rejected activity submission: %s", exc.errors())
        raise HTTPException(status_code=400, detail=error_messages(exc.errors()))

    files = images or []
    if len(files) > MAX_IMAGES:
        raise HTTPException(status_code=400, detail=f"At most {MAX_IMAGES} images can be uploaded at once.")

    n = payload.numOfActivities
    if len(files) != n * 2:
        logger.warning("Image count mismatch from %s: expected %d, got %d", payload.userName, n * 2, len(files))
        raise HTTPException(
            status_code=400,
            detail=f"You must upload {n} before and {n} after images ({n * 2} files), got {len(files)}.",
        )

    try:
        staged = [(f.filename, await store.accept(f)) for f in files]
    except UploadRejected as exc:
        logger.warning("Rejected upload from %s: %s", payload.userName, exc)
        raise HTTPException(status_code=400, detail=str(exc))

    try:
        names = store.save_all("images", staged)
    except OSError:
        logger.exception("Could not write uploaded images")
        raise HTTPException(status_code=500, detail="Error adding activity data")

    record = payload.model_dump()
    record["images"] = pair_images([store.url_for(name) for name in names])
    try:
        doc = create_document(db, ACTIVITY, record)
    except PyMongoError:
        logger.exception("Error adding activity data")
        store.discard(names)
        raise HTTPException(status_code=500, detail="Error adding activity data")

    logger.info("Activity %s added by %s (%d activities)", doc["id"], doc["userName"], n)
    return {"message": "Activity data added successfully", "data": doc}


@app.get("/view-records", response_model=List[ActivityOut])
async def view_records(
    division: Optional[str] = None,
    zone: Optional[str] = None,
    db: Database = Depends(get_db),
):
    if not division or not zone:
        raise HTTPException(status_code=400, detail="Division and Zone are required")
    try:
        records = get_documents(db, ACTIVITY, records_filter(division, zone), sort=[("date", -1)])
    except PyMongoError:
        logger.exception("Error fetching records")
        raise HTTPException(status_code=500, detail="Error fetching records")
    if not records:
        return JSONResponse(status_code=404, content={"message": "No records found"})
    return records

# Announcements
@app.post("/announcement", response_model=AnnouncementCreated, status_code=201)
async def post_announcement(payload: AnnouncementIn, db: Database = Depends(get_db)):
    if not payload.message or not payload.message.strip():
        raise HTTPException(status_code=400, detail="Message is required")
    try:
        doc = create_document(db, ANNOUNCEMENT, {
            "message": payload.message,
            "postedBy": ANNOUNCEMENT_OWNER,
            "timestamp": datetime.now(timezone.utc),
        })
    except PyMongoError:
        logger.exception("Error posting announcement")
        raise HTTPException(status_code=500, detail="Error posting announcement")
    logger.info("Announcement %s posted", doc["id"])
    return {"message": "Announcement posted successfully", "data": doc}


@app.get("/announcements", response_model=List[AnnouncementOut])
async def list_announcements(db: Database = Depends(get_db)):
    try:
        # _id breaks ties between posts made within the same millisecond
        return get_documents(db, ANNOUNCEMENT, sort=[("timestamp", -1), ("_id", -1)])
    except PyMongoError:
        logger.exception("Error fetching announcements")
        raise HTTPException(status_code=500, detail="Error fetching announcements")

# Attendance
@app.post("/mark-attendance", response_model=AttendanceCreated, status_code=201)
async def mark_attendance(payload: AttendanceIn, db: Database = Depends(get_db)):
    record = payload.model_dump()
    record["attended"] = True
    try:
        doc = create_document(db, ATTENDANCE, record)
    except PyMongoError:
        logger.exception("Error marking attendance")
        raise HTTPException(status_code=500, detail="Error marking attendance")
    logger.info("Attendance marked for %s at %s", doc["userName"], doc["event"])
    return {"message": "Attendance marked successfully", "data": doc}


@app.get("/view-attendance", response_model=List[AttendanceOut])
async def view_attendance(db: Database = Depends(get_db)):
    try:
        return get_documents(db, ATTENDANCE)
    except PyMongoError:
        logger.exception("Error fetching attendance")
        raise HTTPException(status_code=500, detail="Error fetching attendance")

# Aggregate endpoints
@app.get("/dashboard-summary", response_model=DashboardSummary)
async def dashboard_summary(db: Database = Depends(get_db)):
    try:
        return compute_summary(db)
    except PyMongoError:
        logger.exception("Error fetching dashboard data")
        raise HTTPException(status_code=500, detail="Error fetching dashboard data")

# Export endpoints (PDF/Excel)
@app.get("/export/excel")
async def export_excel(
    division: Optional[str] = None,
    zone: Optional[str] = None,
    db: Database = Depends(get_db),
):
    try:
        records = get_documents(db, ACTIVITY, records_filter(division, zone), sort=[("date", -1)])
    except PyMongoError:
        logger.exception("Error exporting records")
        raise HTTPException(status_code=500, detail="Error exporting records")
    output = records_workbook(records)
    return StreamingResponse(output, media_type=XLSX_MEDIA_TYPE, headers={"Content-Disposition": "attachment; filename=activity_records.xlsx"})


@app.get("/export/pdf")
async def export_pdf(db: Database = Depends(get_db)):
    try:
        summary = compute_summary(db)
    except PyMongoError:
        logger.exception("Error exporting dashboard summary")
        raise HTTPException(status_code=500, detail="Error exporting dashboard summary")
    buffer = summary_pdf(summary)
    return StreamingResponse(buffer, media_type="application/pdf", headers={"Content-Disposition": "attachment; filename=dashboard_summary.pdf"})


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=HOST, port=PORT)
