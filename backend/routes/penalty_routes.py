from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.database import get_db
from backend.routes.common import PenaltyResponse, ensure_database_ready, service_errors
from backend.services import penalty_service

router = APIRouter(tags=['penalties'])


class CreatePenaltyRequest(BaseModel):
    user_id: int
    appointment_id: int | None = None
    amount: int = Field(gt=0)
    reason: str = Field(min_length=1, max_length=255)


class UserDebtResponse(BaseModel):
    user_id: int
    total_debt: int
    outstanding_fines: int
    pending_payments: int


@router.get('', response_model=list[PenaltyResponse])
def list_penalties(user_id: int | None = Query(default=None), db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        return penalty_service.list_penalties(db, user_id=user_id)


@router.post('', response_model=PenaltyResponse, status_code=status.HTTP_201_CREATED)
def create_penalty(data: CreatePenaltyRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        return penalty_service.create_penalty(
            db,
            user_id=data.user_id,
            amount=data.amount,
            reason=data.reason,
            appointment_id=data.appointment_id,
        )


@router.post('/{penalty_id}/pay', response_model=PenaltyResponse)
def pay_penalty(penalty_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        return penalty_service.mark_penalty_paid(db, penalty_id)


@router.get('/user/{user_id}/debt', response_model=UserDebtResponse)
def get_user_debt(user_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        debt = penalty_service.get_student_debt(db, user_id)
        return UserDebtResponse(
            user_id=user_id,
            total_debt=debt.total_debt,
            outstanding_fines=debt.outstanding_fines,
            pending_payments=debt.pending_payments,
        )
