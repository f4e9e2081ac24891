"""日志初始化。"""

from __future__ import annotations

import logging

NOISY_LOGGERS = ("PIL", "urllib3")


def setup_logging(level: int = logging.INFO, verbose: bool = False) -> None:
    """初始化项目日志配置，verbose 时输出 DEBUG 及第三方库日志。"""

    logging.basicConfig(
        level=logging.DEBUG if verbose else level,
        format="%(asctime)s [%(processName)s] %(levelname)s %(name)s: %(message)s",
    )
    if not verbose:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
