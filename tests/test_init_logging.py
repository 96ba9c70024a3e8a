import logging
from logging.handlers import TimedRotatingFileHandler

from app.app_logging import init_logging
from fastapi import FastAPI


def _clear_handlers(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.handlers.clear()
    return logger


def test_init_logging_adds_handlers_and_app_logger(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "nested" / "logs"))
    app_logger = _clear_handlers("app")
    access_logger = _clear_handlers("uvicorn.access")

    app = FastAPI()
    init_logging(app)

    assert (tmp_path / "nested" / "logs").is_dir()
    assert any(isinstance(h, TimedRotatingFileHandler) for h in app_logger.handlers)
    assert any(isinstance(h, TimedRotatingFileHandler) for h in access_logger.handlers)
    assert app.logger is app_logger

    app_logger.handlers.clear()
    access_logger.handlers.clear()


def test_init_logging_is_idempotent_for_app_logger(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    app_logger = _clear_handlers("app")
    access_logger = _clear_handlers("uvicorn.access")

    stream_handler = logging.StreamHandler()
    access_logger.addHandler(stream_handler)

    init_logging()
    init_logging()

    assert len(app_logger.handlers) == 1
    assert stream_handler not in access_logger.handlers
    assert len(access_logger.handlers) == 1

    app_logger.handlers.clear()
    access_logger.handlers.clear()
