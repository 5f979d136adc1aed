# imgproxy/core/pipeline.py
"""
Request pipeline: one inbound image request, start to finish.

States (strictly sequential, any failure short-circuits to FAILED):

    START → RATE_LIMIT_CHECK → SOURCE_RESOLVE → PATH_VALIDATE
          → OPTIONS_PARSE → TRANSFORM_VALIDATE → LOAD → TRANSFORM
          → HEADER_BUILD → RESPOND

Every validation step runs before the blob store is touched; only
NotFound (storage) and EncodeFailure (codec) can surface after LOAD.
LOAD and TRANSFORM run in worker threads bounded by ``upstream_timeout``.
Cancellation is observed at each transition.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

from imgproxy.core.cache_control import build_cache_control
from imgproxy.core.errors import ProxyError, RequestCancelledError, UpstreamTimeoutError
from imgproxy.core.options import parse_options
from imgproxy.core.ports import BlobStore, ImageCodec
from imgproxy.core.proxy_config import ProxyConfig
from imgproxy.core.rate_limit import RateLimitGate
from imgproxy.core.sources import SourceResolver
from imgproxy.core.transform import TransformSpec, build_transform_spec

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    START = "start"
    RATE_LIMIT_CHECK = "rate_limit_check"
    SOURCE_RESOLVE = "source_resolve"
    PATH_VALIDATE = "path_validate"
    OPTIONS_PARSE = "options_parse"
    TRANSFORM_VALIDATE = "transform_validate"
    LOAD = "load"
    TRANSFORM = "transform"
    HEADER_BUILD = "header_build"
    RESPOND = "respond"
    FAILED = "failed"


@dataclass(frozen=True)
class ProxyRequest:
    options: str      # raw option segment, e.g. "w=100,f=webp"
    path: str         # everything after the option segment
    client_ip: str = "unknown"
    request_id: str | None = None


@dataclass(frozen=True)
class ProxyResponse:
    body: bytes
    content_type: str
    cache_control: str
    spec: TransformSpec

    @property
    def headers(self) -> dict[str, str]:
        return {"Content-Type": self.content_type, "Cache-Control": self.cache_control}


@dataclass
class PipelineTrace:
    """States visited by one request (diagnostics and tests)."""
    states: list[PipelineState] = field(default_factory=lambda: [PipelineState.START])
    error: ProxyError | None = None

    @property
    def state(self) -> PipelineState:
        return self.states[-1]


CancelCheck = Callable[[], Awaitable[bool]]


class RequestPipeline:
    """Orchestrates rate limiting, resolution, validation, load and transform."""

    def __init__(
        self,
        config: ProxyConfig,
        store: BlobStore,
        codec: ImageCodec,
        gate: RateLimitGate,
        metrics=None,
    ):
        self.config = config
        self.resolver = SourceResolver(config.sources, config.scheme, config.default_source)
        self.store = store
        self.codec = codec
        self.gate = gate
        self.metrics = metrics

    async def handle(
        self,
        request: ProxyRequest,
        is_cancelled: CancelCheck | None = None,
        trace: PipelineTrace | None = None,
    ) -> ProxyResponse:
        trace = trace if trace is not None else PipelineTrace()

        async def enter(state: PipelineState) -> None:
            if is_cancelled is not None and await is_cancelled():
                raise RequestCancelledError()
            trace.states.append(state)

        try:
            await enter(PipelineState.RATE_LIMIT_CHECK)
            self.gate.check(request.client_ip, request.path, request.options)

            await enter(PipelineState.SOURCE_RESOLVE)
            source_key, relative_path = self.resolver.split(request.path)
            source, resolved = self.resolver.locate(source_key, relative_path)

            await enter(PipelineState.PATH_VALIDATE)
            self.resolver.authorize(source, resolved)

            await enter(PipelineState.OPTIONS_PARSE)
            options = parse_options(request.options)

            await enter(PipelineState.TRANSFORM_VALIDATE)
            spec = build_transform_spec(options, resolved.extension, self.config.limits)

            await enter(PipelineState.LOAD)
            with self._step("load"):
                data = await self._bounded(self.store.read, resolved.backend_id, resolved.full_path)

            await enter(PipelineState.TRANSFORM)
            with self._step("transform"):
                body, content_type = await self._bounded(self._transform, data, spec)
            # Source bytes are not kept past this point
            del data

            await enter(PipelineState.HEADER_BUILD)
            cache_control = build_cache_control(self.config.cache)

            await enter(PipelineState.RESPOND)
        except ProxyError as exc:
            trace.states.append(PipelineState.FAILED)
            trace.error = exc
            if self.metrics is not None:
                self.metrics.request_failed(exc.kind)
            raise

        if self.metrics is not None:
            self.metrics.request_completed(spec.format)
            self.metrics.bytes_served(len(body))

        logger.info(
            f"Image served: path={resolved.full_path}, format={spec.format}, bytes={len(body)}",
            extra={"request_id": request.request_id, "source": source_key},
        )
        return ProxyResponse(body=body, content_type=content_type, cache_control=cache_control, spec=spec)

    def _step(self, name: str):
        if self.metrics is None:
            return contextlib.nullcontext()
        return self.metrics.track_step(name)

    def _transform(self, data: bytes, spec: TransformSpec) -> tuple[bytes, str]:
        image = self.codec.decode(data)
        image = self.codec.resize(image, spec)
        return self.codec.encode(image, spec.format, spec.quality)

    async def _bounded(self, func, *args):
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args),
                timeout=self.config.upstream_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Upstream step timed out after {self.config.upstream_timeout}s: {func.__name__}")
            raise UpstreamTimeoutError() from None
