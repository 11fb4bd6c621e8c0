"""Web 控制接口（FastAPI）

供播放页面读取状态、播放列表，并下发播放控制命令。
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

log = logging.getLogger(__name__)
app = FastAPI(title="播放列表控制")

# 由 init_app() 注入
_player = None


def init_app(player):
    """注入编排器实例"""
    global _player
    _player = player


def _not_ready():
    return JSONResponse({"ok": False, "msg": "播放服务未启动"}, status_code=503)


# ── 状态 ──

@app.get("/api/status")
async def get_status():
    if _player is None:
        return _not_ready()
    return _player.status


@app.get("/api/playlist")
async def get_playlist():
    if _player is None:
        return _not_ready()
    return _player.playlist


# ── 播放控制 ──

@app.post("/api/start")
async def start_playback():
    if _player is None:
        return _not_ready()
    if _player.nothing_to_play:
        return JSONResponse({"ok": False, "msg": "没有可播放的视频"}, status_code=409)
    _player.start_playback()
    return {"ok": True, "msg": "开始播放"}


@app.post("/api/toggle")
async def toggle_playback():
    if _player is None:
        return _not_ready()
    _player.toggle()
    return {"ok": True, "msg": "已切换播放/暂停"}


@app.post("/api/pause")
async def pause_playback():
    if _player is None:
        return _not_ready()
    _player.pause()
    return {"ok": True, "msg": "已暂停"}


@app.post("/api/seek")
async def seek(request: Request):
    if _player is None:
        return _not_ready()
    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        return JSONResponse({"ok": False, "msg": "请求体必须是 JSON 对象"}, status_code=400)

    try:
        if "seconds" in body:
            _player.seek(float(body["seconds"]))
        elif "delta" in body:
            _player.seek_by(float(body["delta"]))
        else:
            return JSONResponse({"ok": False, "msg": "需要 seconds 或 delta"}, status_code=400)
    except (TypeError, ValueError):
        return JSONResponse({"ok": False, "msg": "参数必须是数字"}, status_code=400)
    return {"ok": True, "msg": "已跳转"}


@app.post("/api/fullscreen")
async def fullscreen():
    if _player is None:
        return _not_ready()
    _player.fullscreen()
    return {"ok": True, "msg": "已请求全屏"}


@app.post("/api/next")
async def next_video():
    if _player is None:
        return _not_ready()
    _player.next()
    log.info("⏭ Web 面板: 下一个")
    return {"ok": True, "msg": "下一个"}


@app.post("/api/previous")
async def previous_video():
    if _player is None:
        return _not_ready()
    _player.previous()
    log.info("⏮ Web 面板: 上一个")
    return {"ok": True, "msg": "上一个"}


@app.post("/api/select/{video_id}")
async def select_video(video_id: str):
    if _player is None:
        return _not_ready()
    if not _player.select(video_id):
        return JSONResponse({"ok": False, "msg": "视频不存在"}, status_code=404)
    return {"ok": True, "msg": "已切换"}


@app.post("/api/refresh")
async def refresh_catalog():
    if _player is None:
        return _not_ready()
    _player.refresh()
    return {"ok": True, "msg": "正在刷新列表"}
