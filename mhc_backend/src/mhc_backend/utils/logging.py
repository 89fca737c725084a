from __future__ import annotations

import logging

_LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def setup_logging(level: int | str = logging.INFO):
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    # basicConfig 只在首次调用时生效，重复调用时仍需更新级别
    logging.getLogger().setLevel(level)
    # APScheduler 每次触发都会输出 INFO，降一级
    logging.getLogger("apscheduler").setLevel(max(level, logging.WARNING))
    return logging.getLogger("mhc")
