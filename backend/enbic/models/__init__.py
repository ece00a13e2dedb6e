from .arns import State, Arn, DeliveryHistory, AuditLogEntry, Reminder
from .dispatch import DispatchBatch
from .inventory import StockMovement, BlankCardRequest, IssueNote
from .auth import User, SessionToken
from .settings import Setting

__all__ = [
    'State', 'Arn', 'DeliveryHistory', 'AuditLogEntry', 'Reminder',
    'DispatchBatch',
    'StockMovement', 'BlankCardRequest', 'IssueNote',
    'User', 'SessionToken',
    'Setting',
]
