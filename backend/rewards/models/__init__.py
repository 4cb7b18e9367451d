from .users import User
from .promotions import Promotion, promotion_usages
from .events import Event, event_organizers, event_guests
from .transactions import Transaction, transaction_promotions
from .auth import SessionToken

__all__ = [
    'User',
    'Promotion', 'promotion_usages',
    'Event', 'event_organizers', 'event_guests',
    'Transaction', 'transaction_promotions',
    'SessionToken',
]
