"""Shared fixtures: a recording stand-in for the wgpu module."""

import sys
from types import ModuleType, SimpleNamespace

import pytest


class FakeTexture:
    def __init__(self, size, format, usage, label=""):
        self.size = size
        self.format = format
        self.usage = usage
        self.label = label
        self.destroyed = False

    def create_view(self):
        return SimpleNamespace(texture=self)

    def destroy(self):
        self.destroyed = True


class FakeQueue:
    def __init__(self):
        self.writes = []
        self.submits = 0

    def write_texture(self, destination, data, layout, size):
        self.writes.append((destination["texture"], bytes(data), layout, size))

    def submit(self, buffers):
        self.submits += len(buffers)

    def read_texture(self, source, layout, size):
        # Mirror the last upload when sizes match, else a solid gray target.
        w, h, _ = size
        if self.writes:
            _, data, _, src_size = self.writes[-1]
            if src_size == (w, h, 1):
                return memoryview(data)
        return memoryview(bytes([90, 90, 90, 255]) * (w * h))


class FakePass:
    def __init__(self, log):
        self.log = log

    def set_pipeline(self, pipeline):
        self.log.append("set_pipeline")

    def set_bind_group(self, index, bind_group):
        self.log.append("set_bind_group")

    def draw(self, count):
        self.log.append(f"draw:{count}")

    def end(self):
        self.log.append("end")


class FakeEncoder:
    def __init__(self, log):
        self.log = log

    def begin_render_pass(self, color_attachments):
        self.log.append("begin_render_pass")
        return FakePass(self.log)

    def finish(self):
        return "command-buffer"


class FakeDevice:
    def __init__(self, fail_texture=False):
        self.queue = FakeQueue()
        self.textures = []
        self.pass_log = []
        self.pipeline_args = None
        self.sampler_args = None
        self.destroyed = False
        self.fail_texture = fail_texture

    def create_shader_module(self, label="", code=""):
        return SimpleNamespace(code=code)

    def create_render_pipeline(self, **kwargs):
        self.pipeline_args = kwargs
        return SimpleNamespace(get_bind_group_layout=lambda index: ("layout", index))

    def create_sampler(self, **kwargs):
        self.sampler_args = kwargs
        return SimpleNamespace(**kwargs)

    def create_texture(self, label="", size=(1, 1, 1), format="", usage=0, **kwargs):
        if self.fail_texture:
            raise RuntimeError("out of device memory")
        texture = FakeTexture(size, format, usage, label)
        self.textures.append(texture)
        return texture

    def create_bind_group(self, layout, entries):
        return SimpleNamespace(layout=layout, entries=entries)

    def create_command_encoder(self, label=""):
        return FakeEncoder(self.pass_log)

    def destroy(self):
        self.destroyed = True


class FakeAdapter:
    def __init__(self, device):
        self.device = device

    async def request_device_async(self, label=""):
        return self.device


def build_fake_wgpu(adapter_available=True, fail_texture=False):
    module = ModuleType("wgpu")
    device = FakeDevice(fail_texture=fail_texture)
    adapter = FakeAdapter(device) if adapter_available else None

    async def request_adapter_async(power_preference="high-performance"):
        module.requested_power_preference = power_preference
        return adapter

    module.gpu = SimpleNamespace(request_adapter_async=request_adapter_async)
    module.TextureUsage = SimpleNamespace(
        COPY_SRC=0x01, COPY_DST=0x02, TEXTURE_BINDING=0x04, RENDER_ATTACHMENT=0x10
    )
    module.device = device
    return module


@pytest.fixture
def fake_wgpu(monkeypatch):
    module = build_fake_wgpu()
    monkeypatch.setitem(sys.modules, "wgpu", module)
    return module


@pytest.fixture
def no_wgpu(monkeypatch):
    # A None entry makes `import wgpu` raise ImportError.
    monkeypatch.setitem(sys.modules, "wgpu", None)


@pytest.fixture
def install_fake_wgpu(monkeypatch):
    def install(**options):
        module = build_fake_wgpu(**options)
        monkeypatch.setitem(sys.modules, "wgpu", module)
        return module

    return install
