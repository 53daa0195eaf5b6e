# app/crud/commission.py
from typing import List

from sqlalchemy.orm import Session

from app.models.commission import EventCommissionConfig

def get_config_by_event(db: Session, event_id: int) -> EventCommissionConfig | None:
    return db.query(EventCommissionConfig).filter(EventCommissionConfig.event_id == event_id).first()

def get_all_configs(db: Session) -> List[EventCommissionConfig]:
    return db.query(EventCommissionConfig).all()
