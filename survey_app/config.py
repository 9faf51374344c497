"""
Application Settings — All via environment variables with sensible defaults.
"""
import os


class Settings:
    # ── Server ──
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8001"))
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # ── CORS ──
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "http://localhost:8000,http://localhost:3000,*")

    # ── Uploads ──
    MAX_UPLOAD_MB: int = int(os.getenv("MAX_UPLOAD_MB", "50"))

    # ── Analysis defaults (see AnalysisThresholds for the full set) ──
    NUMERIC_FRACTION_THRESHOLD: float = float(os.getenv("NUMERIC_FRACTION_THRESHOLD", "0.8"))
    HISTOGRAM_BINS: int = int(os.getenv("HISTOGRAM_BINS", "20"))


settings = Settings()
