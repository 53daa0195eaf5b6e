# app/models/__init__.py
# Импортируем все модели, чтобы они зарегистрировались в Base.metadata

from .user import User
from .event import Event, Ticket
from .affiliate import Affiliate, MarketingAgency
from .referral import ReferralLink, ReferralClick
from .commission import EventCommissionConfig
from .conversion import ReferralConversion
from .payout import AffiliatePayout
from .performance import AffiliatePerformanceCache
