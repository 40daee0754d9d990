from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, EmailStr
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.deps import get_current_user, require_admin
from app.core.database import get_db
from app.core.roles import Role
from app.core.security import hash_password
from app.models.asesor import Asesor
from app.models.banco import Banco
from app.models.job_run import JobRun
from app.models.user import User

router = APIRouter()


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    role: Role = Role.staff


class UserUpdate(BaseModel):
    password: Optional[str] = None
    role: Optional[Role] = None
    activo: Optional[bool] = None


class UserOut(BaseModel):
    id: int
    email: EmailStr
    role: str
    activo: bool

    class Config:
        from_attributes = True


class AsesorIn(BaseModel):
    nombre: str
    activo: bool = True


class AsesorOut(BaseModel):
    id: int
    nombre: str
    activo: bool

    class Config:
        from_attributes = True


class BancoIn(BaseModel):
    banco: str
    numero_cuenta: Optional[str] = None
    tipo: str = "Receptor"


class BancoOut(BaseModel):
    id: int
    banco: str
    numero_cuenta: Optional[str]
    tipo: str

    class Config:
        from_attributes = True


@router.get("/users", response_model=List[UserOut], dependencies=[Depends(require_admin)])
def list_users(db: Session = Depends(get_db)):
    return db.query(User).order_by(User.id.asc()).all()


@router.post("/users", response_model=UserOut, dependencies=[Depends(require_admin)])
def create_user(data: UserCreate, db: Session = Depends(get_db)):
    if db.query(User).filter(User.email == data.email).first():
        raise HTTPException(status_code=400, detail="Email already exists")
    new_user = User(email=data.email, hashed_password=hash_password(data.password), role=data.role.value)
    db.add(new_user)
    db.commit()
    db.refresh(new_user)
    return new_user


@router.put("/users/{user_id}", response_model=UserOut, dependencies=[Depends(require_admin)])
def update_user(user_id: int, data: UserUpdate, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if data.password:
        user.hashed_password = hash_password(data.password)
    if data.role is not None:
        user.role = data.role.value
    if data.activo is not None:
        user.activo = data.activo
    db.commit()
    db.refresh(user)
    return user


@router.get("/asesores", response_model=List[AsesorOut])
def list_asesores(
    activo: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Asesor)
    if activo is not None:
        query = query.filter(Asesor.activo == activo)
    return query.order_by(Asesor.nombre.asc()).all()


@router.post("/asesores", response_model=AsesorOut, dependencies=[Depends(require_admin)])
def create_asesor(data: AsesorIn, db: Session = Depends(get_db)):
    asesor = Asesor(nombre=data.nombre.strip(), activo=data.activo)
    db.add(asesor)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Ya existe un asesor con ese nombre")
    db.refresh(asesor)
    return asesor


@router.put("/asesores/{asesor_id}", response_model=AsesorOut, dependencies=[Depends(require_admin)])
def update_asesor(asesor_id: int, data: AsesorIn, db: Session = Depends(get_db)):
    asesor = db.query(Asesor).filter(Asesor.id == asesor_id).first()
    if not asesor:
        raise HTTPException(status_code=404, detail="Asesor no encontrado")
    asesor.nombre = data.nombre.strip()
    asesor.activo = data.activo
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Ya existe un asesor con ese nombre")
    db.refresh(asesor)
    return asesor


@router.get("/bancos", response_model=List[BancoOut])
def list_bancos(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return db.query(Banco).order_by(Banco.banco.asc()).all()


@router.post("/bancos", response_model=BancoOut, dependencies=[Depends(require_admin)])
def create_banco(data: BancoIn, db: Session = Depends(get_db)):
    if data.tipo not in {"Receptor", "Emisor"}:
        raise HTTPException(status_code=400, detail="tipo debe ser 'Receptor' o 'Emisor'")
    banco = Banco(banco=data.banco.strip(), numero_cuenta=data.numero_cuenta, tipo=data.tipo)
    db.add(banco)
    db.commit()
    db.refresh(banco)
    return banco


@router.delete("/bancos/{banco_id}", dependencies=[Depends(require_admin)])
def delete_banco(banco_id: int, db: Session = Depends(get_db)):
    banco = db.query(Banco).filter(Banco.id == banco_id).first()
    if not banco:
        raise HTTPException(status_code=404, detail="Banco no encontrado")
    db.delete(banco)
    db.commit()
    return {"deleted": banco_id}


@router.get("/jobs", dependencies=[Depends(require_admin)])
def list_job_runs(
    job_name: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Últimas ejecuciones de los jobs programados"""
    query = db.query(JobRun)
    if job_name:
        query = query.filter(JobRun.job_name == job_name)
    runs = query.order_by(JobRun.id.desc()).limit(limit).all()
    return [
        {
            "id": r.id,
            "job_name": r.job_name,
            "status": r.status,
            "message": r.message,
            "started_at": r.started_at.isoformat(),
            "finished_at": r.finished_at.isoformat() if r.finished_at else None,
        }
        for r in runs
    ]
