import os

import pytest

from vnotes.daemon import daemon_status, ensure_daemon, hold_pid_file, running_pid, stop_daemon
from vnotes.errors import Locked


def test_stopped_without_pid_file(cfg):
    assert running_pid(cfg) is None
    assert daemon_status(cfg) == "stopped"
    assert stop_daemon(cfg) == "not running"


def test_pid_file_lock_means_running(cfg):
    with hold_pid_file(cfg):
        assert running_pid(cfg) == os.getpid()
        assert daemon_status(cfg) == f"running (pid {os.getpid()})"
        with pytest.raises(Locked), hold_pid_file(cfg):
            pass
    assert running_pid(cfg) is None


def test_stale_pid_file_reads_as_stopped(cfg):
    cfg.daemon_pid.write_text("999999")
    assert daemon_status(cfg) == "stopped"


def test_ensure_daemon_respects_disable(cfg):
    assert cfg.daemon_disabled
    assert ensure_daemon(cfg) is None
    assert not cfg.daemon_pid.exists()


def test_ensure_daemon_noop_when_running(cfg):
    cfg.daemon_disabled = False
    with hold_pid_file(cfg):
        assert ensure_daemon(cfg) is None
