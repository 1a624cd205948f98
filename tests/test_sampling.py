import pytest

from conftest import FakeHost
from system_suite import sampling
from system_suite.errors import SamplingUnavailable
from system_suite.sampling import (
    DarwinTopCPU,
    DarwinVmStatMemory,
    DfDisk,
    LinuxTopCPU,
    ProcessShareCPU,
    ProcMeminfoMemory,
    ProcStatCPU,
    ResourceSampler,
    Sample,
    SampleKind,
)

DARWIN_TOP = """Processes: 512 total, 3 running, 509 sleeping, 2456 threads
2024/05/01 10:00:00
Load Avg: 2.10, 1.95, 1.80
CPU usage: 7.50% user, 12.25% sys, 80.25% idle
SharedLibs: 400M resident, 80M data, 40M linkedit.
"""

LINUX_TOP = """top - 10:00:00 up 3 days,  2:01,  1 user,  load average: 0.15, 0.20, 0.18
Tasks: 201 total,   1 running, 200 sleeping,   0 stopped,   0 zombie
%Cpu(s):  2.0 us,  1.0 sy,  0.0 ni, 96.5 id,  0.5 wa,  0.0 hi,  0.0 si,  0.0 st
MiB Mem :  15936.0 total,   8000.0 free,   4000.0 used,   3936.0 buff/cache
"""

VM_STAT = """Mach Virtual Memory Statistics: (page size of 16384 bytes)
Pages free:                               10000.
Pages active:                            200000.
Pages inactive:                           20000.
Pages speculative:                         5000.
Pages throttled:                              0.
"""

MEMINFO = """MemTotal:       16318048 kB
MemFree:         1234567 kB
MemAvailable:    8159024 kB
Buffers:          123456 kB
"""

PROC_STAT_1 = "cpu  100 0 100 800 0 0 0 0 0 0\ncpu0 50 0 50 400 0 0 0 0 0 0\n"
PROC_STAT_2 = "cpu  150 0 150 900 0 0 0 0 0 0\ncpu0 75 0 75 450 0 0 0 0 0 0\n"

DF_OUTPUT = """Filesystem     1024-blocks     Used Available Capacity Mounted on
/dev/sda1        239000000 47800000 191200000      21% /
"""


def make_sampler(config, host, strategies):
    return ResourceSampler(config, host=host, strategies=strategies)


def test_darwin_top_adds_user_and_sys():
    host = FakeHost(system="Darwin", commands={("top", "-l", "1", "-n", "0"): DARWIN_TOP})
    sample = DarwinTopCPU().try_sample(host)
    assert sample.available
    assert sample.percent == pytest.approx(19.75)
    assert 0 <= sample.percent <= 100


def test_linux_top_uses_idle_column():
    host = FakeHost(commands={("top", "-bn1"): LINUX_TOP})
    sample = LinuxTopCPU().try_sample(host)
    assert sample.percent == pytest.approx(3.5)
    assert 0 <= sample.percent <= 100


def test_linux_top_accepts_comma_decimals():
    line = "%Cpu(s):  2,0 us,  1,0 sy,  0,0 ni, 96,5 id,  0,5 wa,  0,0 hi,  0,0 si,  0,0 st\n"
    host = FakeHost(commands={("top", "-bn1"): line})
    sample = LinuxTopCPU().try_sample(host)
    assert sample.percent == pytest.approx(3.5)


def test_darwin_top_accepts_comma_decimals():
    output = "CPU usage: 7,50% user, 12,25% sys, 80,25% idle\n"
    host = FakeHost(system="Darwin", commands={("top", "-l", "1", "-n", "0"): output})
    assert DarwinTopCPU().try_sample(host).percent == pytest.approx(19.75)


def test_top_parse_failure_returns_none():
    host = FakeHost(commands={("top", "-bn1"): "no cpu summary here"})
    assert LinuxTopCPU().try_sample(host) is None


def test_process_share_is_normalised_by_core_count(monkeypatch):
    monkeypatch.setattr(sampling.psutil, "cpu_count", lambda: 4)
    host = FakeHost(commands={("ps", "-A", "-o", "%cpu="): " 50.0\n 30.0\n  0.0\n 120.0\n"})
    sample = ProcessShareCPU().try_sample(host)
    assert sample.percent == pytest.approx(50.0)
    assert 0 <= sample.percent <= 100


def test_process_share_without_processes_fails():
    host = FakeHost(commands={("ps", "-A", "-o", "%cpu="): "\n"})
    assert ProcessShareCPU().try_sample(host) is None


def test_proc_stat_differential_sleeps_once():
    host = FakeHost(files={"/proc/stat": [PROC_STAT_1, PROC_STAT_2]})
    sample = ProcStatCPU(interval=0.5).try_sample(host)
    # total delta 200, idle delta 100
    assert sample.percent == pytest.approx(50.0)
    assert host.sleeps == [0.5]


def test_proc_stat_without_progress_fails():
    host = FakeHost(files={"/proc/stat": [PROC_STAT_1, PROC_STAT_1]})
    assert ProcStatCPU().try_sample(host) is None


def test_proc_stat_unreadable_fails_without_retry():
    host = FakeHost()
    assert ProcStatCPU().try_sample(host) is None
    assert host.sleeps == []


def test_cpu_falls_through_to_proc_stat(config):
    host = FakeHost(files={"/proc/stat": [PROC_STAT_1, PROC_STAT_2]})
    sampler = make_sampler(config, host, [LinuxTopCPU(), ProcessShareCPU(), ProcStatCPU()])
    sample = sampler.sample(SampleKind.CPU)
    assert sample.available
    assert sample.source == "/proc/stat"
    assert ("top", "-bn1") in host.calls
    assert ("ps", "-A", "-o", "%cpu=") in host.calls


def test_cpu_unavailable_when_every_strategy_fails(config):
    sampler = make_sampler(config, FakeHost(), [LinuxTopCPU(), ProcessShareCPU(), ProcStatCPU()])
    sample = sampler.sample(SampleKind.CPU)
    assert sample.available is False
    assert sample.percent is None
    with pytest.raises(SamplingUnavailable):
        sample.require()


def test_platform_specific_strategies_are_skipped(config):
    host = FakeHost(system="Darwin", commands={("top", "-bn1"): LINUX_TOP})
    sampler = make_sampler(config, host, [LinuxTopCPU()])
    assert sampler.sample(SampleKind.CPU).available is False
    assert host.calls == []


def test_strategy_errors_are_absorbed(config):
    class Broken(sampling.SamplingStrategy):
        name = "broken"
        kind = SampleKind.MEMORY

        def try_sample(self, host, target=None):
            raise OSError("boom")

    sampler = make_sampler(config, FakeHost(), [Broken()])
    assert sampler.sample(SampleKind.MEMORY).available is False


def test_darwin_memory_from_vm_stat():
    host = FakeHost(
        system="Darwin",
        commands={("vm_stat",): VM_STAT, ("sysctl", "-n", "hw.memsize"): "17179869184\n"},
    )
    sample = DarwinVmStatMemory().try_sample(host)
    free = (10000 + 20000 + 5000) * 16384
    assert sample.total == 17179869184
    assert sample.used == 17179869184 - free


def test_darwin_memory_needs_sysctl():
    host = FakeHost(system="Darwin", commands={("vm_stat",): VM_STAT})
    assert DarwinVmStatMemory().try_sample(host) is None


def test_linux_memory_from_meminfo():
    host = FakeHost(files={"/proc/meminfo": [MEMINFO]})
    sample = ProcMeminfoMemory().try_sample(host)
    assert sample.total == 16318048 * 1024
    assert sample.used == (16318048 - 8159024) * 1024


def test_meminfo_missing_available_fails():
    host = FakeHost(files={"/proc/meminfo": ["MemTotal: 100 kB\n"]})
    assert ProcMeminfoMemory().try_sample(host) is None


def test_disk_parses_second_line(tmp_path):
    target = str(tmp_path)
    host = FakeHost(commands={("df", "-Pk", target): DF_OUTPUT})
    sample = DfDisk().try_sample(host, target)
    assert sample.total == 239000000 * 1024
    assert sample.used == 47800000 * 1024
    assert sample.percent == 21.0
    assert sample.target == target


def test_disk_rejects_malformed_output(tmp_path):
    target = str(tmp_path)
    host = FakeHost(commands={("df", "-Pk", target): "Filesystem\n/dev/sda1 lots\n"})
    assert DfDisk().try_sample(host, target) is None


def test_disk_for_missing_path_is_unavailable(config, tmp_path):
    missing = str(tmp_path / "does-not-exist")
    sampler = ResourceSampler(config, host=FakeHost())
    sample = sampler.sample(SampleKind.DISK, missing)
    assert sample.available is False
    assert sample.target == missing
    assert sample.used is None


def test_disk_defaults_to_configured_target(config):
    target = config.disk_target
    host = FakeHost(commands={("df", "-Pk", target): DF_OUTPUT})
    sample = make_sampler(config, host, [DfDisk()]).sample(SampleKind.DISK)
    assert sample.target == target


def test_repeated_samples_match_for_unchanged_host(config):
    host = FakeHost(
        files={"/proc/meminfo": [MEMINFO]},
        commands={("df", "-Pk", config.disk_target): DF_OUTPUT},
    )
    sampler = make_sampler(config, host, [ProcMeminfoMemory(), DfDisk()])
    assert sampler.sample(SampleKind.MEMORY) == sampler.sample(SampleKind.MEMORY)
    assert sampler.sample(SampleKind.DISK) == sampler.sample(SampleKind.DISK)


def test_local_cpu_sample_is_well_formed(config):
    sample = ResourceSampler(config).sample(SampleKind.CPU)
    assert isinstance(sample.available, bool)
    if sample.available:
        assert 0 <= sample.percent <= 100


def test_dashboard_order(config):
    kinds = [sample.kind for sample in make_sampler(config, FakeHost(), []).dashboard()]
    assert kinds == [SampleKind.CPU, SampleKind.MEMORY, SampleKind.DISK]


def test_unavailable_sample_cannot_carry_value():
    with pytest.raises(ValueError):
        Sample(kind=SampleKind.CPU, available=False, percent=10.0)
