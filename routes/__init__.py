from .health import health_bp
from .slots import slot_bp
from .booking import booking_bp
from .admin import admin_bp
from .notifications import notification_bp
