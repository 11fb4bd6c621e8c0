"""HTTP 目录源（GET/POST /api/videos）"""

import logging

import httpx

from sources import Catalog, CatalogSource, Video, parse_catalog

log = logging.getLogger(__name__)


class RemoteSource(CatalogSource):
    def __init__(self, url: str, token: str = "", timeout: float = 15,
                 client: httpx.Client | None = None):
        self.url = url
        self.token = token
        self.client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    def load_catalog(self) -> Catalog:
        try:
            resp = self.client.get(self.url, headers={"Cache-Control": "no-store"})
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as e:
            log.warning("获取目录失败: %s (%s)", self.url, e)
            return Catalog()
        except ValueError as e:
            log.warning("目录 JSON 解析失败: %s (%s)", self.url, e)
            return Catalog()

        catalog = parse_catalog(data)
        log.info("%s -> 找到 %d 个视频", self.url, len(catalog.videos))
        return catalog

    def save_catalog(self, videos: list[Video]) -> bool:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            resp = self.client.post(self.url, json=[v.to_dict() for v in videos], headers=headers)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            log.warning("保存目录失败: %s", e)
            return False
        return True
