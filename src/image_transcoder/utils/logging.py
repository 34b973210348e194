"""日志配置。"""

from __future__ import annotations

import logging
from typing import Optional


def setup_logging(level: int = logging.INFO, handler: Optional[logging.Handler] = None) -> None:
    """初始化项目日志配置（多进程下记录进程名）。

    传入 handler 时日志只经由它输出，例如与进度条共用锁的 ProgressLogHandler；
    时间与级别由该 handler 自己渲染。
    """

    if handler is None:
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(processName)s] %(levelname)s %(name)s: %(message)s",
        )
        return

    handler.setFormatter(logging.Formatter("[%(processName)s] %(name)s: %(message)s"))
    logging.basicConfig(level=level, handlers=[handler])
