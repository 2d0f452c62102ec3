"""GLM / BigModel 流式补全客户端。

接口风格与 OpenAI 类似，使用 chat/completions 端点：
- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <authKey>
- 请求体: {model, messages, stream: true}

响应是 SSE 风格的逐行帧，每行以 "data:" 开头，携带
choices[0].delta.content，以 "data: [DONE]" 结束。
"""

import json
import logging
from typing import Any, Dict, Iterator, Optional, Sequence
from uuid import uuid4

import httpx

from chat_core.config.settings import settings
from chat_core.domain.exceptions import NetworkError
from chat_core.domain.models import ContextEntry
from chat_core.infrastructure.logging.logger import log_event
from chat_core.providers.registry import GLM_CONFIG, ProviderConfig


MISSING_KEY_NOTICE = "need auth key"
DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"
# 诊断日志里原始帧的最大长度
MAX_FRAME_LOG = 500


class GlmClient:
    """GLM / BigModel 流式补全客户端实现。"""

    name = "glm"

    def __init__(self, credentials, cfg=settings, provider: ProviderConfig = GLM_CONFIG):
        self._credentials = credentials
        self._settings = cfg
        self._provider = provider

    def open(self, context: Sequence[ContextEntry]) -> Iterator[str]:
        """发起一次流式请求，逐个产出文本片段。

        生成器是惰性的：第一次 next() 时才发请求。没有配置凭证时只产出一条
        提示片段后结束。消费方提前停止时，with 块负责关闭连接。
        """

        log_ctx = {"trace_id": f"st-{uuid4().hex}", "provider": self.name}
        auth_key = getattr(self._credentials, "auth_key", None)
        if not auth_key:
            log_event(logging.WARNING, "Auth key missing, stream degraded", log_ctx)
            yield MISSING_KEY_NOTICE
            return

        payload = self._build_payload(context)
        base = getattr(self._settings, "glm_base_url", None) or self._provider.base_url
        timeout = httpx.Timeout(self._settings.http_timeout, read=None)
        log_event(
            logging.INFO,
            "Opening completion stream",
            log_ctx,
            model=payload["model"],
            message_count=len(payload["messages"]),
        )
        yielded = 0
        try:
            with httpx.Client(timeout=timeout, trust_env=False) as client:
                with client.stream(
                    "POST",
                    f"{base}/chat/completions",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {auth_key}",
                        "Content-Type": "application/json",
                    },
                ) as resp:
                    if resp.status_code >= 400:
                        # 错误帧只做诊断，不交给调用方
                        for frame in resp.iter_text():
                            log_event(
                                logging.WARNING,
                                "Error frame from completion endpoint",
                                log_ctx,
                                http_status=resp.status_code,
                                frame=frame[:MAX_FRAME_LOG],
                            )
                        return
                    for line in resp.iter_lines():
                        piece = self._parse_line(line, log_ctx)
                        if piece:
                            yielded += 1
                            yield piece
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name) from e
        log_event(logging.INFO, "Completion stream ended", log_ctx, fragments=yielded)

    # ---- 辅助方法 ----

    def _build_payload(self, context: Sequence[ContextEntry]) -> Dict[str, Any]:
        model = getattr(self._settings, "default_model", None) or "chat"
        return {
            "model": self._provider.resolve_model(model),
            "messages": [entry.to_payload() for entry in context],
            "stream": True,
        }

    @staticmethod
    def _parse_line(line: str, log_ctx: Dict[str, Any]) -> Optional[str]:
        """解析一行 SSE 数据，返回增量文本；不携带内容的行返回 None。"""

        line = line.strip()
        if not line or not line.startswith(DATA_PREFIX):
            return None
        data_str = line[len(DATA_PREFIX):].strip()
        if not data_str or data_str == DONE_SENTINEL:
            return None
        try:
            event = json.loads(data_str)
        except json.JSONDecodeError:
            log_event(logging.WARNING, "Undecodable stream line", log_ctx, frame=data_str[:MAX_FRAME_LOG])
            return None
        if not isinstance(event, dict) or "error" in event:
            log_event(logging.WARNING, "Error frame in stream", log_ctx, frame=data_str[:MAX_FRAME_LOG])
            return None
        choices = event.get("choices")
        ch0 = choices[0] if isinstance(choices, list) and choices else None
        delta = ch0.get("delta", {}) if isinstance(ch0, dict) else None
        # 形状不对的帧与错误帧一样跳过
        if not isinstance(delta, dict):
            log_event(logging.WARNING, "Error frame in stream", log_ctx, frame=data_str[:MAX_FRAME_LOG])
            return None
        content = delta.get("content")
        return content if isinstance(content, str) and content else None
