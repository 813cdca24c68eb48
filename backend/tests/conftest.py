"""
Image Proxy 测试配置文件

这个文件包含 pytest fixtures（测试夹具）和测试辅助工具。

关键概念：
- 不访问真实网络：上游服务器用 httpx.MockTransport 模拟
- 不真正等待：退避延迟被记录下来而不是 sleep
- 时钟可控：缓存新鲜度用假时钟测试
"""

import sys
from io import BytesIO
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import httpx
import pytest
from PIL import Image

# 添加 backend 目录到 Python 路径
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from image_proxy.cache_manager import DiskImageCache
from image_proxy.cropper import ImageCropper
from image_proxy.face_detector import NO_FACE, FaceBox
from image_proxy.service import ImageProxyService
from image_proxy.settings import ImageProxySettings
from image_proxy.transport import ResilientTransport


# ============================================
# 辅助工具
# ============================================

def make_image(
    width: int,
    height: int,
    color=(128, 128, 128),
    mode: str = "RGB",
    fmt: str = "PNG",
    right_color=None,
) -> bytes:
    """
    生成测试图片。

    right_color 不为空时，右半边使用另一种颜色，
    用于判断裁剪的是哪一部分。
    """
    img = Image.new(mode, (width, height), color)
    if right_color is not None:
        img.paste(Image.new(mode, (width - width // 2, height), right_color), (width // 2, 0))
    output = BytesIO()
    img.save(output, format=fmt)
    return output.getvalue()


def open_image(data: bytes) -> Image.Image:
    img = Image.open(BytesIO(data))
    img.load()
    return img


class FakeClock:
    """可手动推进的时钟"""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """记录退避延迟，不真正等待"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeFaceDetector:
    """返回固定人脸框，并记录调用次数"""

    def __init__(self, face: FaceBox = NO_FACE):
        self.face = face
        self.calls = 0

    def detect_largest_face(self, data: bytes) -> FaceBox:
        self.calls += 1
        return self.face

    def close(self) -> None:
        pass


class SpyCropper(ImageCropper):
    """记录 transform 调用次数的 cropper"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = 0

    def transform(self, data, role):
        self.calls += 1
        return super().transform(data, role)


class UpstreamStub:
    """
    模拟上游图片服务器。

    使用方式：
    ```python
    upstream.add("https://img.example.com/a.jpg", make_image(600, 300))
    upstream.fail("https://down.example.com/a.jpg", httpx.ConnectError)
    ```
    """

    def __init__(self):
        self.routes: Dict[str, Tuple[int, bytes, str]] = {}
        self.errors: Dict[str, type] = {}
        self.requests: List[str] = []

    def add(self, url: str, body: bytes, status_code: int = 200, content_type: str = "image/png") -> None:
        self.routes[url] = (status_code, body, content_type)

    def fail(self, url: str, error_type: type) -> None:
        self.errors[url] = error_type

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if url in self.errors:
            raise self.errors[url](f"attempt {len(self.requests)} failed", request=request)
        if url not in self.routes:
            return httpx.Response(404, content=b"not found", headers={"content-type": "text/plain"})
        status_code, body, content_type = self.routes[url]
        return httpx.Response(status_code, content=body, headers={"content-type": content_type})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def upstream():
    return UpstreamStub()


@pytest.fixture
def face_detector():
    return FakeFaceDetector()


@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / "image_cache"


@pytest.fixture
def settings(cache_dir):
    return ImageProxySettings(cache_dir=str(cache_dir), base_url="http://localhost:8000")


@pytest.fixture
def cache(cache_dir):
    return DiskImageCache(cache_dir=str(cache_dir))


@pytest.fixture
def service(settings, upstream, sleep, cache, face_detector):
    """
    一个完整的 ImageProxyService：
    - 上游：UpstreamStub
    - 缓存：临时目录
    - 人脸检测：FakeFaceDetector
    """
    transport = ResilientTransport(upstream.client(), sleep=sleep)
    cropper = SpyCropper(face_detector)
    return ImageProxyService(settings, transport, cache, cropper)
