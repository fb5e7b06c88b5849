"""wgpu presentation path.

The processed frame is uploaded to a source texture and drawn into an
off-screen render target with a single full-screen triangle; the target is
then read back into the output surface.
"""

from __future__ import annotations

import inspect
import logging
import os
from typing import Any

from dither_maker.core.processor import ProcessedFrame
from dither_maker.render.backend import BackendError, BackendKind, ProbeResult
from dither_maker.render.surface import OutputSurface

_LOG = logging.getLogger("dither_maker.render")

_PRESENT_WGSL = """
struct VertexOutput {
    @builtin(position) position: vec4<f32>,
    @location(0) uv: vec2<f32>,
};

@vertex
fn vs_main(@builtin(vertex_index) vertex_index: u32) -> VertexOutput {
    var positions = array<vec2<f32>, 3>(
        vec2<f32>(-1.0, -1.0),
        vec2<f32>(3.0, -1.0),
        vec2<f32>(-1.0, 3.0),
    );
    var uvs = array<vec2<f32>, 3>(
        vec2<f32>(0.0, 1.0),
        vec2<f32>(2.0, 1.0),
        vec2<f32>(0.0, -1.0),
    );
    var out: VertexOutput;
    out.position = vec4<f32>(positions[vertex_index], 0.0, 1.0);
    out.uv = uvs[vertex_index];
    return out;
}

@group(0) @binding(0) var frame_texture: texture_2d<f32>;
@group(0) @binding(1) var frame_sampler: sampler;

@fragment
fn fs_main(in: VertexOutput) -> @location(0) vec4<f32> {
    return textureSample(frame_texture, frame_sampler, in.uv);
}
"""


def _resolve_power_preference() -> str:
    raw = os.getenv("DITHER_MAKER_POWER_PREFERENCE", "high-performance").strip().lower()
    if raw in {"low-power", "high-performance"}:
        return raw
    return "high-performance"


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def _request_adapter(wgpu: Any, power_preference: str) -> Any:
    gpu = getattr(wgpu, "gpu", None)
    if gpu is None:
        raise BackendError("wgpu.gpu entrypoint unavailable")
    request = getattr(gpu, "request_adapter_async", None)
    if not callable(request):
        request = getattr(gpu, "request_adapter_sync", None)
    if not callable(request):
        raise BackendError("wgpu adapter request API unavailable")
    return await _resolve(request(power_preference=power_preference))


async def _request_device(adapter: Any) -> Any:
    request = getattr(adapter, "request_device_async", None)
    if not callable(request):
        request = getattr(adapter, "request_device_sync", None)
    if not callable(request):
        raise BackendError("wgpu device request API unavailable")
    return await _resolve(request(label="dither_maker.device"))


class AcceleratedBackend:
    """Owns the device, pipeline, sampler, source texture and render target."""

    kind = BackendKind.ACCELERATED

    def __init__(self, wgpu: Any, device: Any, surface_format: str) -> None:
        self._wgpu = wgpu
        self._device = device
        self._format = surface_format
        self._queue = device.queue
        shader = device.create_shader_module(label="dither_maker.present", code=_PRESENT_WGSL)
        self._pipeline = device.create_render_pipeline(
            label="dither_maker.present",
            layout="auto",
            vertex={"module": shader, "entry_point": "vs_main"},
            fragment={
                "module": shader,
                "entry_point": "fs_main",
                "targets": [{"format": surface_format}],
            },
            primitive={"topology": "triangle-list"},
        )
        self._sampler = device.create_sampler(
            mag_filter="linear",
            min_filter="linear",
            address_mode_u="clamp-to-edge",
            address_mode_v="clamp-to-edge",
        )
        self._source_texture: Any = None
        self._source_size = (0, 0)
        self._target_texture: Any = None
        self._target_size = (0, 0)
        self._released = False

    @property
    def source_size(self) -> tuple[int, int]:
        return self._source_size

    @property
    def target_size(self) -> tuple[int, int]:
        return self._target_size

    def _ensure_source_texture(self, width: int, height: int) -> Any:
        if self._source_texture is not None and self._source_size == (width, height):
            return self._source_texture
        if self._source_texture is not None:
            self._source_texture.destroy()
            self._source_texture = None
        usage = self._wgpu.TextureUsage
        self._source_texture = self._device.create_texture(
            label="dither_maker.source",
            size=(width, height, 1),
            format="rgba8unorm",
            usage=usage.TEXTURE_BINDING | usage.COPY_DST,
            dimension="2d",
            mip_level_count=1,
            sample_count=1,
        )
        self._source_size = (width, height)
        return self._source_texture

    def _ensure_target_texture(self, width: int, height: int) -> Any:
        if self._target_texture is not None and self._target_size == (width, height):
            return self._target_texture
        if self._target_texture is not None:
            self._target_texture.destroy()
            self._target_texture = None
        usage = self._wgpu.TextureUsage
        self._target_texture = self._device.create_texture(
            label="dither_maker.target",
            size=(width, height, 1),
            format=self._format,
            usage=usage.RENDER_ATTACHMENT | usage.COPY_SRC,
            dimension="2d",
            mip_level_count=1,
            sample_count=1,
        )
        self._target_size = (width, height)
        return self._target_texture

    def present(self, frame: ProcessedFrame, surface: OutputSurface) -> None:
        if self._released:
            return
        width, height = frame.width, frame.height
        source = self._ensure_source_texture(width, height)
        target = self._ensure_target_texture(surface.width, surface.height)

        self._queue.write_texture(
            {"texture": source, "mip_level": 0, "origin": (0, 0, 0)},
            frame.pixels.tobytes(),
            {"offset": 0, "bytes_per_row": width * 4, "rows_per_image": height},
            (width, height, 1),
        )
        bind_group = self._device.create_bind_group(
            layout=self._pipeline.get_bind_group_layout(0),
            entries=[
                {"binding": 0, "resource": source.create_view()},
                {"binding": 1, "resource": self._sampler},
            ],
        )
        encoder = self._device.create_command_encoder(label="dither_maker.frame")
        render_pass = encoder.begin_render_pass(
            color_attachments=[
                {
                    "view": target.create_view(),
                    "resolve_target": None,
                    "clear_value": (0.0, 0.0, 0.0, 1.0),
                    "load_op": "clear",
                    "store_op": "store",
                }
            ]
        )
        render_pass.set_pipeline(self._pipeline)
        render_pass.set_bind_group(0, bind_group)
        render_pass.draw(3)
        render_pass.end()
        self._queue.submit([encoder.finish()])

        tw, th = self._target_size
        data = self._queue.read_texture(
            {"texture": target, "mip_level": 0, "origin": (0, 0, 0)},
            {"offset": 0, "bytes_per_row": tw * 4, "rows_per_image": th},
            (tw, th, 1),
        )
        surface.write_pixels(data)

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        for texture in (self._source_texture, self._target_texture):
            if texture is not None:
                texture.destroy()
        self._source_texture = None
        self._target_texture = None
        self._source_size = (0, 0)
        self._target_size = (0, 0)
        self._pipeline = None
        self._sampler = None
        device, self._device = self._device, None
        destroy = getattr(device, "destroy", None)
        if callable(destroy):
            destroy()


async def probe_accelerated(
    surface: OutputSurface,
    power_preference: str | None = None,
) -> ProbeResult:
    """Try to bring up the wgpu path. Never raises; failures give a fallback result."""
    try:
        import wgpu
    except Exception as exc:
        reason = f"wgpu unavailable: {exc.__class__.__name__}: {exc}"
        _LOG.info("backend_probe_failed reason=%s", reason)
        return ProbeResult.fallback(reason)

    preference = power_preference or _resolve_power_preference()
    device = None
    try:
        adapter = await _request_adapter(wgpu, preference)
        if adapter is None:
            raise BackendError("no compatible adapter")
        device = await _request_device(adapter)
        if device is None:
            raise BackendError("device request returned None")
        backend = AcceleratedBackend(wgpu, device, surface.native_format)
    except Exception as exc:
        if device is not None:
            destroy = getattr(device, "destroy", None)
            if callable(destroy):
                destroy()
        reason = f"{exc.__class__.__name__}: {exc}"
        _LOG.info("backend_probe_failed reason=%s", reason)
        return ProbeResult.fallback(reason)

    _LOG.debug("backend_probe_succeeded power_preference=%s", preference)
    return ProbeResult(kind=BackendKind.ACCELERATED, backend=backend)
