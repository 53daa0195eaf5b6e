# app/crud/performance.py
from datetime import datetime
from typing import Dict, List

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from app.models.conversion import ReferralConversion
from app.models.performance import AffiliatePerformanceCache
from app.models.referral import ReferralClick
from app.utils.dates import utcnow

def aggregate_clicks_by_affiliate(db: Session, period_start: datetime, period_end: datetime) -> Dict[int, dict]:
    """Клики и уникальные посетители по партнерам за период (GROUP BY affiliate_id)."""
    rows = db.query(
        ReferralClick.affiliate_id,
        func.count(ReferralClick.id),
        func.count(func.distinct(ReferralClick.visitor_id)),
        func.sum(case((ReferralClick.device_type == "desktop", 1), else_=0)),
        func.sum(case((ReferralClick.device_type == "mobile", 1), else_=0)),
        func.sum(case((ReferralClick.device_type == "tablet", 1), else_=0)),
    ).filter(
        ReferralClick.affiliate_id.isnot(None),
        ReferralClick.clicked_at >= period_start,
        ReferralClick.clicked_at <= period_end,
    ).group_by(ReferralClick.affiliate_id).all()

    return {
        affiliate_id: {
            "total_clicks": total or 0,
            "unique_visitors": unique or 0,
            "desktop_clicks": desktop or 0,
            "mobile_clicks": mobile or 0,
            "tablet_clicks": tablet or 0,
        }
        for affiliate_id, total, unique, desktop, mobile, tablet in rows
    }

def aggregate_conversions_by_affiliate(db: Session, period_start: datetime, period_end: datetime) -> Dict[int, dict]:
    """Подтвержденные конверсии, выручка и комиссия по партнерам за период."""
    rows = db.query(
        ReferralConversion.affiliate_id,
        func.count(ReferralConversion.id),
        func.sum(ReferralConversion.organizer_revenue),
        func.sum(ReferralConversion.affiliate_commission),
    ).filter(
        ReferralConversion.affiliate_id.isnot(None),
        ReferralConversion.conversion_status == "confirmed",
        ReferralConversion.converted_at >= period_start,
        ReferralConversion.converted_at <= period_end,
    ).group_by(ReferralConversion.affiliate_id).all()

    return {
        affiliate_id: {
            "total_conversions": count or 0,
            "total_revenue_generated": revenue or 0,
            "total_commission_earned": commission or 0,
        }
        for affiliate_id, count, revenue, commission in rows
    }

def upsert_performance_row(db: Session, affiliate_id: int, time_period: str, **values) -> AffiliatePerformanceCache:
    """Перезаписывает строку кеша (affiliate_id, time_period). Требует внешнего вызова db.commit()."""
    row = db.query(AffiliatePerformanceCache).filter(
        AffiliatePerformanceCache.affiliate_id == affiliate_id,
        AffiliatePerformanceCache.time_period == time_period,
    ).first()
    if row is None:
        row = AffiliatePerformanceCache(affiliate_id=affiliate_id, time_period=time_period)
        db.add(row)
    for key, value in values.items():
        setattr(row, key, value)
    row.last_updated_at = utcnow()
    return row

def get_performance_for_affiliate(db: Session, affiliate_id: int) -> List[AffiliatePerformanceCache]:
    return db.query(AffiliatePerformanceCache).filter(
        AffiliatePerformanceCache.affiliate_id == affiliate_id
    ).order_by(AffiliatePerformanceCache.time_period.asc()).all()

def get_cached_affiliate_ids(db: Session, time_period: str) -> List[int]:
    """Партнеры, у которых уже есть строка кеша за период (их нужно обнулить, если активности нет)."""
    rows = db.query(AffiliatePerformanceCache.affiliate_id).filter(
        AffiliatePerformanceCache.time_period == time_period
    ).all()
    return [affiliate_id for affiliate_id, in rows]
