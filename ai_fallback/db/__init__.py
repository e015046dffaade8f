from ai_fallback.db.engine import close_db, get_engine, get_session_maker, init_db
from ai_fallback.db.models import AIModelConfig, Base

__all__ = ["AIModelConfig", "Base", "close_db", "get_engine", "get_session_maker", "init_db"]
