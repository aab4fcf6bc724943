import asyncio
import threading
from pathlib import Path

import pytest

from hotserve.core.build_manager import BuildManager
from hotserve.core.builder import BuildResult
from hotserve.core.errors import BuildError
from hotserve.preview.reload_hub import FullReload, ReloadHub

class FakeRenderer:
    def __init__(self):
        self.regenerated = []

    def regenerate(self, out_dir=None):
        self.regenerated.append(out_dir)

async def wait_started(compiler):
    loop = asyncio.get_running_loop()
    assert await loop.run_in_executor(None, compiler.started.wait, 5)

@pytest.fixture
def hub():
    return ReloadHub()

@pytest.fixture
def renderer():
    return FakeRenderer()

@pytest.fixture
def build_manager(config, hub, compiler, renderer, reporter):
    return BuildManager(config, hub, compiler, renderer=renderer, reporter=reporter)

class TestBuildManager:
    @pytest.mark.asyncio
    async def test_rebuild_publishes_full_reload(self, build_manager, hub, compiler, reporter):
        subscription = hub.subscribe()

        result = await build_manager.rebuild([Path("src/main.css")])

        assert isinstance(result, BuildResult)
        assert compiler.calls == [True]
        assert await subscription.recv() == FullReload()
        assert build_manager.build_count == 1
        assert reporter.reports == [(["src/main.css"], list(result.diagnostics), result.elapsed_time)]

    @pytest.mark.asyncio
    async def test_trigger_during_build_runs_exactly_one_more(self, build_manager, hub, compiler):
        subscription = hub.subscribe()
        compiler.gate = threading.Event()

        first = asyncio.create_task(build_manager.rebuild([Path("a.css")]))
        await wait_started(compiler)
        assert build_manager.is_building
        assert await build_manager.rebuild([Path("b.css")]) is None
        compiler.gate.set()
        result = await first

        assert isinstance(result, BuildResult)
        assert len(compiler.calls) == 2
        assert compiler.max_active == 1
        assert not build_manager.is_building
        assert subscription.pending == 2

    @pytest.mark.asyncio
    async def test_many_triggers_coalesce_into_one_trailing_build(self, build_manager, compiler, reporter):
        compiler.gate = threading.Event()

        first = asyncio.create_task(build_manager.rebuild([Path("a.css")]))
        await wait_started(compiler)
        for name in ("b.css", "c.css", "d.css"):
            assert await build_manager.rebuild([Path(name)]) is None
        compiler.gate.set()
        await first

        assert len(compiler.calls) == 2
        assert compiler.max_active == 1
        assert reporter.reports[1][0] == ["b.css", "c.css", "d.css"]

    @pytest.mark.asyncio
    async def test_failed_build_publishes_nothing(self, build_manager, hub, compiler, reporter):
        subscription = hub.subscribe()
        compiler.fail = True

        with pytest.raises(BuildError):
            await build_manager.rebuild([Path("src/app.css")])

        assert subscription.pending == 0
        assert build_manager.build_count == 0
        assert reporter.reports[0][1][0].level == 'error'
        assert build_manager.metrics.counters['build_error'] == 1
        assert not build_manager.is_building

    @pytest.mark.asyncio
    async def test_next_change_rebuilds_after_a_failure(self, build_manager, hub, compiler):
        subscription = hub.subscribe()
        compiler.fail = True
        with pytest.raises(BuildError):
            await build_manager.rebuild()

        compiler.fail = False
        await build_manager.rebuild()

        assert len(compiler.calls) == 2
        assert await subscription.recv() == FullReload()

    @pytest.mark.asyncio
    async def test_reload_html_regenerates_host_page(self, config, hub, compiler, renderer):
        config.reload_html = True
        manager = BuildManager(config, hub, compiler, renderer=renderer)

        await manager.rebuild()

        assert renderer.regenerated == [config.out_path]

    @pytest.mark.asyncio
    async def test_host_page_untouched_without_reload_html(self, build_manager, renderer):
        await build_manager.rebuild()

        assert renderer.regenerated == []

    @pytest.mark.asyncio
    async def test_initial_build(self, build_manager, hub, compiler, renderer):
        subscription = hub.subscribe()

        result = await build_manager.initial_build()

        assert compiler.calls == [False]
        assert renderer.regenerated == [build_manager.config.out_path]
        assert result.warnings[0].message == 'unused import'
        assert subscription.pending == 0

    @pytest.mark.asyncio
    async def test_initial_build_failure_propagates(self, build_manager, compiler):
        compiler.fail = True

        with pytest.raises(BuildError):
            await build_manager.initial_build()

    @pytest.mark.asyncio
    async def test_compiler_crash_still_runs_trailing_build(self, build_manager, hub, compiler, reporter):
        subscription = hub.subscribe()
        compiler.gate = threading.Event()
        compiler.error = UnicodeDecodeError('utf-8', b'\xff', 0, 1, 'invalid start byte')

        first = asyncio.create_task(build_manager.rebuild([Path("a.css")]))
        await wait_started(compiler)
        assert await build_manager.rebuild([Path("b.css")]) is None
        compiler.gate.set()
        with pytest.raises(BuildError) as failure:
            await first

        assert "UnicodeDecodeError" in str(failure.value)
        assert isinstance(failure.value.__cause__, UnicodeDecodeError)
        assert len(compiler.calls) == 2
        assert [r[0] for r in reporter.reports] == [["a.css"], ["b.css"]]
        assert build_manager.metrics.counters['build_error'] == 2
        assert subscription.pending == 0
        assert not build_manager.is_building

        compiler.error = None
        assert isinstance(await build_manager.rebuild(), BuildResult)
        assert len(compiler.calls) == 3

    @pytest.mark.asyncio
    async def test_failed_trailing_build_after_good_build(self, build_manager, hub, compiler):
        subscription = hub.subscribe()
        compiler.gate = threading.Event()
        compiler.fail_after = 1

        first = asyncio.create_task(build_manager.rebuild([Path("a.css")]))
        await wait_started(compiler)
        await build_manager.rebuild([Path("b.css")])
        compiler.gate.set()
        with pytest.raises(BuildError):
            await first

        assert build_manager.build_count == 1
        assert await subscription.recv() == FullReload()
        assert subscription.pending == 0
