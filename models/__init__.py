from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .slot import Slot
from .booking import Booking
from .notification import Notification
