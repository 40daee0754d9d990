from datetime import date
from io import BytesIO
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.deps import get_current_user, require_admin
from app.core.errors import DomainError, http_error
from app.core.serialization_helpers import row_to_dict
from app.models.upload_history import UploadHistory
from app.models.user import User
from app.services import import_service

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
ALLOWED_EXTENSIONS = (".xlsx", ".xls", ".csv")


def _check_extension(file: UploadFile) -> None:
    if not (file.filename or "").lower().endswith(ALLOWED_EXTENSIONS):
        raise HTTPException(status_code=400, detail="El archivo debe ser Excel (.xlsx, .xls) o CSV")


def _xlsx_response(content: bytes, filename: str) -> StreamingResponse:
    return StreamingResponse(
        BytesIO(content),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.post("/import/sales")
async def import_sales(
    file: UploadFile = File(...),
    canal: str = Form(...),
    mode: str = Form("add"),  # "add" or "replace"
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Importa ventas desde Excel/CSV.
    Mode: 'add' = omite órdenes ya registradas, 'replace' = reemplaza las órdenes del archivo.
    Si alguna fila es inválida no se importa nada.
    """
    _check_extension(file)
    contents = await file.read()
    try:
        return import_service.import_sales(db, contents, file.filename, canal, mode, user=current_user)
    except DomainError as e:
        db.rollback()
        raise http_error(e)


@router.post("/import/sales/undo", dependencies=[Depends(require_admin)])
def undo_last_import(db: Session = Depends(get_db)):
    """Deshace la última importación en modo replace."""
    try:
        return import_service.undo_last_import(db)
    except DomainError as e:
        db.rollback()
        raise http_error(e)


@router.post("/import/egresos")
async def import_egresos(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _check_extension(file)
    contents = await file.read()
    try:
        return import_service.import_egresos(db, contents, file.filename, user=current_user)
    except DomainError as e:
        db.rollback()
        raise http_error(e)


@router.get("/export/sales")
def export_sales(
    canal: Optional[str] = Query(None),
    estado_entrega: Optional[List[str]] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    include_hidden: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    content = import_service.export_sales(
        db, canal=canal, estado_entrega=estado_entrega, start_date=start_date, end_date=end_date,
        include_hidden=include_hidden,
    )
    return _xlsx_response(content, "ventas_exportadas.xlsx")


@router.get("/export/egresos")
def export_egresos(
    estado: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    content = import_service.export_egresos(db, estado=estado, start_date=start_date, end_date=end_date)
    return _xlsx_response(content, "egresos_exportados.xlsx")


@router.get("/upload-history")
def upload_history(
    canal: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(UploadHistory)
    if canal:
        query = query.filter(UploadHistory.canal == canal)
    return [row_to_dict(h) for h in query.order_by(UploadHistory.id.desc()).limit(limit).all()]
