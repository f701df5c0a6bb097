"""网络工具 - URL 校验、JSON 拉取、带进度的流式下载

只使用 http/https；HTTP / 网络错误统一转换为 SourceError。
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any, Callable
from urllib.parse import urlparse

from hagidesk.core.exceptions import SourceError, ValidationError

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = frozenset(("http", "https"))

USER_AGENT = "hagidesk"
CHUNK_SIZE = 64 * 1024


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """校验 URL 仅使用 http/https，防止 file:// 等非预期协议访问

    Raises:
        ValidationError: URL scheme 不在白名单内
    """
    parsed = urlparse(url)
    if parsed.scheme not in _ALLOWED_SCHEMES:
        label = f" ({context})" if context else ""
        raise ValidationError(
            f"不允许的 URL 协议 '{parsed.scheme}'{label}，"
            f"仅支持 http/https: {url}"
        )


def build_request(
    url: str, *, token: str = "", headers: dict[str, str] | None = None,
) -> urllib.request.Request:
    req = urllib.request.Request(url)
    req.add_header("User-Agent", USER_AGENT)
    for k, v in (headers or {}).items():
        req.add_header(k, v)
    if token:
        req.add_header("Authorization", f"Bearer {token}")
    return req


def fetch_json(
    url: str, *, token: str = "", timeout: float = 30,
    headers: dict[str, str] | None = None,
) -> Any:
    """GET 并解析 JSON

    Raises:
        SourceError: 网络错误、HTTP 非 2xx（status 属性携带状态码）或 JSON 无效
    """
    validate_url_scheme(url, context="fetch json")
    req = build_request(url, token=token, headers=headers)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:  # nosec B310
            body = resp.read()
    except urllib.error.HTTPError as e:
        raise SourceError(
            f"HTTP {e.code}: {url}", status=e.code,
            headers=dict(e.headers or {}),
        ) from e
    except (urllib.error.URLError, OSError) as e:
        raise SourceError(f"请求失败: {url} - {e}") from e
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SourceError(f"响应不是有效 JSON: {url}") from e


def stream_download(
    url: str,
    dest: str | Path,
    *,
    token: str = "",
    timeout: float = 60,
    headers: dict[str, str] | None = None,
    on_chunk: Callable[[int, int], None] | None = None,
) -> int:
    """流式下载到 dest，每个分块回调 on_chunk(已下载字节, 总字节)

    总字节未知时为 0。失败时删除不完整文件。返回下载的字节数。
    """
    validate_url_scheme(url, context="download")
    dest_path = Path(dest)
    dest_path.parent.mkdir(parents=True, exist_ok=True)
    req = build_request(url, token=token, headers=headers)
    current = 0
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:  # nosec B310
            total = int(resp.headers.get("Content-Length") or 0)
            with open(dest_path, "wb") as f:
                while True:
                    chunk = resp.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    f.write(chunk)
                    current += len(chunk)
                    if on_chunk is not None:
                        on_chunk(current, total)
    except urllib.error.HTTPError as e:
        dest_path.unlink(missing_ok=True)
        raise SourceError(f"下载失败 HTTP {e.code}: {url}", status=e.code) from e
    except (urllib.error.URLError, OSError) as e:
        dest_path.unlink(missing_ok=True)
        raise SourceError(f"下载失败: {url} - {e}") from e
    logger.info("已下载: %s -> %s (%d 字节)", url, dest_path, current)
    return current
