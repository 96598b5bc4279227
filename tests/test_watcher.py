import asyncio

from conftest import FakeInstaller, RestartRecorder

from devloop.fingerprint import EMPTY, FingerprintStore, compute_fingerprint
from devloop.watcher import ChangeDetector, TickOutcome


def make_detector(workspace, installer=None, restart=None, interval=10):
    store = FingerprintStore(workspace / ".deps_hash")
    detector = ChangeDetector(
        [workspace / "requirements.txt", workspace / "requirements.lock"],
        store,
        installer or FakeInstaller(),
        restart or RestartRecorder(),
        interval=interval,
        base_dir=workspace,
    )
    return detector, store


def test_no_drift_never_installs_or_restarts(workspace):
    (workspace / "requirements.txt").write_text("fastapi\n")
    installer, restart = FakeInstaller(), RestartRecorder()
    detector, store = make_detector(workspace, installer, restart)
    store.write(detector.fingerprint())

    outcomes = [asyncio.run(detector.tick()) for _ in range(3)]

    assert outcomes == [TickOutcome.UNCHANGED] * 3
    assert installer.calls == 0
    assert restart.calls == 0


def test_drift_installs_records_and_restarts(workspace):
    (workspace / "requirements.txt").write_text("fastapi\n")
    installer, restart = FakeInstaller(), RestartRecorder()
    detector, store = make_detector(workspace, installer, restart)
    store.write(detector.fingerprint())

    (workspace / "requirements.txt").write_text("fastapi\nhttpx\n")

    assert asyncio.run(detector.tick()) is TickOutcome.RELOADED
    assert installer.calls == 1
    assert restart.calls == 1
    assert store.read() == detector.fingerprint()
    assert asyncio.run(detector.tick()) is TickOutcome.UNCHANGED


def test_manifest_appearing_after_empty_tick(workspace):
    installer, restart = FakeInstaller(), RestartRecorder()
    detector, store = make_detector(workspace, installer, restart)

    # both files absent: empty fingerprint equals the empty baseline
    assert asyncio.run(detector.tick()) is TickOutcome.UNCHANGED
    assert installer.calls == 0

    (workspace / "requirements.txt").write_text("fastapi\n")

    assert asyncio.run(detector.tick()) is TickOutcome.RELOADED
    assert installer.calls == 1
    assert restart.calls == 1
    assert store.read() == compute_fingerprint([workspace / "requirements.txt"], workspace)


def test_all_files_vanishing_skips_install(workspace):
    installer, restart = FakeInstaller(), RestartRecorder()
    detector, store = make_detector(workspace, installer, restart)
    store.write("f" * 64)

    assert asyncio.run(detector.tick()) is TickOutcome.SKIPPED_EMPTY
    assert installer.calls == 0
    assert restart.calls == 0
    assert store.read() == "f" * 64


def test_failed_install_keeps_stale_fingerprint_and_retries(workspace):
    (workspace / "requirements.txt").write_text("fastapi\n")
    installer = FakeInstaller(results=[False, False, True])
    restart = RestartRecorder()
    detector, store = make_detector(workspace, installer, restart)
    store.write("0" * 64)

    assert asyncio.run(detector.tick()) is TickOutcome.INSTALL_FAILED
    assert store.read() == "0" * 64
    assert restart.calls == 0

    assert asyncio.run(detector.tick()) is TickOutcome.INSTALL_FAILED
    assert asyncio.run(detector.tick()) is TickOutcome.RELOADED
    assert installer.calls == 3
    assert restart.calls == 1
    assert store.read() == detector.fingerprint()


def test_loop_survives_errors_and_stops(workspace):
    class BrokenInstaller:
        calls = 0

        async def install(self):
            self.calls += 1
            raise RuntimeError("boom")

    (workspace / "requirements.txt").write_text("fastapi\n")
    installer = BrokenInstaller()
    detector, _ = make_detector(workspace, installer, interval=0.01)

    async def scenario():
        await detector.start()
        await asyncio.sleep(0.2)
        await detector.stop()

    asyncio.run(scenario())

    assert installer.calls >= 2
    assert detector.tick_count == installer.calls


def test_stop_is_safe_before_start(workspace):
    detector, _ = make_detector(workspace)
    asyncio.run(detector.stop())
