"""本地 JSON 文件目录源（videos.json）"""

import json
import logging
from pathlib import Path

from sources import Catalog, CatalogSource, Video, parse_catalog

log = logging.getLogger(__name__)


class LocalSource(CatalogSource):
    def __init__(self, path: str):
        self.path = Path(path)

    def load_catalog(self) -> Catalog:
        if not self.path.exists():
            log.warning("目录文件不存在: %s", self.path)
            return Catalog()

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            log.warning("读取目录失败: %s (%s)", self.path, e)
            return Catalog()

        catalog = parse_catalog(data)
        log.info("%s -> 找到 %d 个视频", self.path, len(catalog.videos))
        return catalog

    def save_catalog(self, videos: list[Video]) -> bool:
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump([v.to_dict() for v in videos], f, ensure_ascii=False, indent=2)
        except OSError as e:
            log.warning("保存目录失败: %s", e)
            return False
        log.info("目录已保存: %s (%d 个视频)", self.path, len(videos))
        return True
