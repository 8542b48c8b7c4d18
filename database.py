from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from pydantic_settings import BaseSettings
from functools import lru_cache, wraps
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """對局引擎設定，可由環境變數或 .env 覆寫（例如 PHASE_TIMEOUT_SECONDS=30）"""
    database_url: str = "sqlite:///./liars_lock.db"

    # 每個階段的作答時限（秒）
    phase_timeout_seconds: int = 60
    rating_k_factor: int = 32
    message_max_length: int = 500

    initial_rating: int = 1200
    early_adopter_rating: int = 1225
    early_adopter_limit: int = 100

    # 背景逾時巡檢間隔，0 表示停用
    sweep_interval_seconds: int = 5

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings():
    return Settings()


settings = get_settings()

# 同一個連線池同時服務請求執行緒與逾時巡檢（asyncio.to_thread），SQLite 需關閉 check_same_thread。
# SQLite 會忽略 FOR UPDATE，配對與結算另外靠條件式刪除與 state_version 防止重複寫入
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if settings.database_url.startswith("sqlite") else {},
    pool_pre_ping=True
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """
    FastAPI dependency：提供 Database Session

    使用 yield 確保 session 在請求結束後會被關閉
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def transactional(func):
    """
    Transaction decorator：確保資料庫操作的原子性

    使用方式：
        @transactional
        def submit_action(db: Session, ...):
            match = with_match_lock(match_id, db).first()
            match.player1_guess = 1
            # 不需要手動 commit，decorator 會處理

    正常返回（包含返回失敗結果 ActionResult.failure）：
        - 自動 commit
        - 因此「寫入後再回報錯誤」的流程（逾時判負、揭示不符）也會被保存

    如果函式內發生異常：
        - 自動 rollback（對局不會停在半結算狀態）
        - 異常會被重新拋出（讓上層處理）

    注意：
        - 第一個參數必須是 db: Session
        - 不要在函式內手動 commit（decorator 會處理）
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        # 找出 db session（可能在 args 或 kwargs）
        db = None
        if args and isinstance(args[0], Session):
            db = args[0]
        elif 'db' in kwargs:
            db = kwargs['db']

        if db is None:
            raise ValueError(
                f"@transactional requires 'db: Session' as first argument, "
                f"but got args={args}, kwargs={kwargs}"
            )

        try:
            result = func(*args, **kwargs)
            db.commit()
            return result
        except Exception as e:
            logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
            db.rollback()
            raise

    return wrapper
