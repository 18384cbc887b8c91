# backend/medtrack/db/models/__init__.py

from medtrack.db.models.session_entry import SessionEntry
