import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from chatbox_core.config.settings import settings


class JsonFormatter(logging.Formatter):
    def __init__(self, redact: bool = False):
        super().__init__()
        self._redact = redact

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if self._redact:
            msg = (msg or "")[:64]
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger(cfg=settings) -> logging.Logger:
    logger = logging.getLogger("chatbox_core")
    logger.setLevel(cfg.log_level)
    # 重复调用时不重复挂载 handler
    for handler in list(logger.handlers):
        if getattr(handler, "_chatbox_json", False):
            logger.removeHandler(handler)
            handler.close()
    log_dir = Path(cfg.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_dir / "chatbox.log", encoding="utf-8")
    fh.setLevel(cfg.log_level)
    fh.setFormatter(JsonFormatter(redact=cfg.log_redact_content))
    fh._chatbox_json = True
    logger.addHandler(fh)
    return logger


logger = setup_logger()
