"""ロギング設定モジュール

ホスト環境（コンテナ / サーバーレス）では JSON 形式、ローカルではテキスト形式でログを出力する。

使い方:
    from clientdesk.logging_config import setup_logging
    setup_logging()

環境変数:
    LOG_LEVEL: ログレベル (DEBUG, INFO, WARNING, ERROR, CRITICAL) デフォルト: INFO
    LOG_FORMAT: "json" で JSON 形式を強制、"text" でテキスト形式を強制
    K_SERVICE / CLOUD_RUN_JOB: ホスト環境判定（LOG_FORMAT 未指定時）
"""

import json
import logging
import os


class StructuredLogFormatter(logging.Formatter):
    """ログ収集基盤向けの JSON フォーマッタ

    `severity` フィールドを含めることで、収集側でログレベルが正しくマッピングされる。
    logger.info("...", extra={"extra_fields": {...}}) で任意のフィールドを追加できる。
    """

    LEVEL_TO_SEVERITY = {
        "DEBUG": "DEBUG",
        "INFO": "INFO",
        "WARNING": "WARNING",
        "ERROR": "ERROR",
        "CRITICAL": "CRITICAL",
    }

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict = {
            "severity": self.LEVEL_TO_SEVERITY.get(record.levelname, "DEFAULT"),
            "message": record.getMessage(),
            "logger": record.name,
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
        }
        if record.exc_info and record.exc_info[0]:
            log_entry["exception"] = self.formatException(record.exc_info)
        if hasattr(record, "extra_fields"):
            log_entry.update(record.extra_fields)
        return json.dumps(log_entry, ensure_ascii=False)


def _use_json_format() -> bool:
    log_format = os.getenv("LOG_FORMAT", "").strip().lower()
    if log_format in ("json", "text"):
        return log_format == "json"
    return bool(os.getenv("K_SERVICE") or os.getenv("CLOUD_RUN_JOB"))


def setup_logging() -> None:
    """ログ設定を初期化する

    LOG_FORMAT が "json"、またはホスト環境（K_SERVICE / CLOUD_RUN_JOB が存在）では
    JSON フォーマットを使用し、それ以外はテキスト形式を使用する。
    httpx のリクエストログは WARNING 以上に抑える。
    """
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    handler = logging.StreamHandler()
    if _use_json_format():
        handler.setFormatter(StructuredLogFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
