from models import db
from models.user import ROLES, Role

def seed_roles():
    """Create any missing role rows. Safe to run on every start."""
    existing = {r.name for r in Role.query.all()}
    missing = [name for name in ROLES if name not in existing]
    for name in missing:
        db.session.add(Role(name=name))
    if missing:
        db.session.commit()
