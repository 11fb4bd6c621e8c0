"""WebDAV 目录源（共享盘上的 videos.json）"""

import io
import json
import logging
import time

import httpx
from webdav4.client import Client

from sources import Catalog, CatalogSource, Video, parse_catalog

log = logging.getLogger(__name__)


class WebDAVSource(CatalogSource):
    def __init__(self, url: str, username: str, password: str,
                 path: str = "/videos.json", max_retries: int = 3):
        self.url = url.rstrip("/")
        self.path = path
        self.max_retries = max_retries

        # 自定义 httpx 客户端（兼容部分网盘的 SSL 问题）
        http_client = httpx.Client(
            auth=(username, password),
            verify=False,
            timeout=30,
        )
        self.client = Client(base_url=self.url, http_client=http_client)

    def load_catalog(self) -> Catalog:
        for attempt in range(self.max_retries):
            try:
                buf = io.BytesIO()
                self.client.download_fileobj(self.path, buf)
                data = json.loads(buf.getvalue().decode("utf-8"))
                catalog = parse_catalog(data)
                log.info("%s%s -> 找到 %d 个视频", self.url, self.path, len(catalog.videos))
                return catalog
            except ValueError as e:
                log.warning("目录 JSON 解析失败: %s", e)
                return Catalog()
            except Exception as e:
                log.warning("下载目录失败 (第%d次): %s", attempt + 1, e)
                if attempt < self.max_retries - 1:
                    wait = (attempt + 1) * 3
                    log.info("%d 秒后重试...", wait)
                    time.sleep(wait)
        return Catalog()

    def save_catalog(self, videos: list[Video]) -> bool:
        payload = json.dumps([v.to_dict() for v in videos], ensure_ascii=False, indent=2)
        try:
            self.client.upload_fileobj(io.BytesIO(payload.encode("utf-8")), self.path, overwrite=True)
        except Exception as e:
            log.warning("上传目录失败: %s", e)
            return False
        return True
