"""视频播放列表播放器入口"""

import logging
import signal
import sys
from pathlib import Path

import uvicorn
import yaml

from orchestrator import PlaybackOrchestrator
from progress import JsonProgressStore
from sources import CatalogSource
from sources.local import LocalSource
from sources.remote import RemoteSource
from sources.webdav import WebDAVSource
import web

# 日志配置
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s  %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger(__name__)


def load_config(path: str = "config.yaml") -> dict:
    """加载配置文件"""
    config_path = Path(path)
    if not config_path.exists():
        log.error("配置文件不存在: %s", config_path.absolute())
        sys.exit(1)

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    log.info("配置已加载: %s", config_path)
    return config


def build_source(config: dict) -> CatalogSource:
    """根据配置创建目录源"""
    cfg = config.get("catalog", {})
    src_type = cfg.get("type", "file")

    if src_type == "file":
        return LocalSource(path=cfg.get("path", "videos.json"))
    if src_type == "http":
        return RemoteSource(url=cfg["url"], token=cfg.get("token", ""))
    if src_type == "webdav":
        return WebDAVSource(
            url=cfg["url"],
            username=cfg["username"],
            password=cfg["password"],
            path=cfg.get("path", "/videos.json"),
        )

    log.error("未知目录源类型: %s，请检查 config.yaml", src_type)
    sys.exit(1)


def main():
    config = load_config()

    source = build_source(config)
    store = JsonProgressStore(config.get("progress", {}).get("path", "progress.json"))
    player = PlaybackOrchestrator(source=source, store=store, config=config)

    # 注入到 Web 模块
    web.init_app(player)

    # 信号处理
    def handle_signal(signum, frame):
        log.info("收到信号 %d，正在停止...", signum)
        player.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    # 后台线程启动播放
    player.run_in_thread()

    # 主线程启动控制接口
    web_cfg = config.get("web", {})
    host = web_cfg.get("host", "0.0.0.0")
    port = web_cfg.get("port", 8088)
    log.info("控制接口: http://localhost:%d/api/status", port)
    uvicorn.run(web.app, host=host, port=port, log_level="warning")


if __name__ == "__main__":
    main()
