"""
Tests for the optimization services.

System-changing calls (registry, sc, schtasks, netsh, PowerShell) are replaced
with fakes so these run on any platform.
"""

import os
import platform
import subprocess
import time

import pytest

from classifier import InventoryItem
from services import (  # type: ignore
    bloatware_service,
    disk_cleanup_service,
    log_cleanup_service,
    memory_service,
    network_service,
    privacy_service,
    startup_service,
    system_restore_service,
    windows_services_service,
)
from services.windows_services_service import ServiceTweak  # type: ignore

DAY = 86400


@pytest.fixture
def not_windows(monkeypatch):
    monkeypatch.setattr(platform, "system", lambda: "Linux")


@pytest.fixture
def on_windows(monkeypatch):
    monkeypatch.setattr(platform, "system", lambda: "Windows")


def age(path, days):
    stamp = time.time() - days * DAY
    os.utime(path, (stamp, stamp))


class TestUnsupportedPlatform:
    @pytest.mark.parametrize(
        "handler",
        [
            startup_service.run_startup_cleanup,
            bloatware_service.run_bloatware_removal,
            windows_services_service.run_services_optimization,
            memory_service.run_memory_optimization,
            privacy_service.run_privacy_shield,
            disk_cleanup_service.run_disk_cleanup,
            network_service.run_network_optimization,
            system_restore_service.run_system_restore,
        ],
    )
    def test_skipped_off_windows(self, not_windows, handler):
        result = handler({"type": "x"}, None)
        assert result["status"] == "skipped"
        assert "only available on Windows" in result["summary"]["human_readable"]["message"]


class TestStartupCleanup:
    INVENTORY = [
        InventoryItem("SecurityHealth", "SecurityHealthSystray.exe", "HKLM\\Run"),
        InventoryItem("AdobeAAMUpdater-1.0", "AAMUpdater.exe", "HKLM\\Run"),
        InventoryItem("Discord", "Update.exe --processStart Discord.exe", "HKCU\\Run"),
        InventoryItem("Steam", "steam.exe -silent", "HKCU\\Run"),
        InventoryItem("XYZCorpTool", "xyz.exe", "HKCU\\Run"),
    ]
    TASKS = [
        "\\DiscordHelper",
        "\\Microsoft\\Windows\\Discord",
        "\\AdobeGCInvoker-1.0",
        "\\AdobeAAMUpdater-1.0-PC-user",
    ]

    def test_junk_removed_and_related_task_disabled(self, recorder):
        remove = recorder()
        disable = recorder()

        results, outcomes = startup_service.cleanup_startup(
            self.INVENTORY,
            "category_a_only",
            remove_action=remove,
            task_names=lambda: list(self.TASKS),
            disable_task=disable,
        )

        assert remove.calls == ["AdobeAAMUpdater-1.0", "Discord"]
        assert results["classification"] == {
            "protected": 1,
            "category_a": 2,
            "category_b": 1,
            "unknown": 1,
        }
        assert "Discord" in results["search_terms"]
        # core Windows and updater tasks stay enabled
        assert disable.calls == ["\\DiscordHelper"]
        assert results["tasks_disabled"] == ["\\DiscordHelper"]
        assert len(outcomes) == 3

    def test_failures_are_reported(self, recorder):
        results, outcomes = startup_service.cleanup_startup(
            self.INVENTORY,
            "all_non_essential",
            remove_action=recorder(fail_on={"Discord"}),
            task_names=None,
        )

        assert [r["id"] for r in results["removed"]] == ["AdobeAAMUpdater-1.0", "Steam"]
        assert results["failed"][0]["id"] == "Discord"
        assert "Access is denied" in results["failed"][0]["error"]
        assert results["tasks_disabled"] == []

    def test_chosen_ids(self, recorder):
        remove = recorder()
        startup_service.cleanup_startup(
            self.INVENTORY,
            "individual",
            chosen_ids=["XYZCorpTool", "SecurityHealth"],
            remove_action=remove,
            task_names=None,
        )
        assert remove.calls == ["XYZCorpTool"]

    @pytest.mark.parametrize(
        "error", [subprocess.TimeoutExpired(["schtasks"], 60), FileNotFoundError("schtasks")]
    )
    def test_task_listing_error_keeps_entry_outcomes(self, recorder, error):
        def broken_listing():
            raise error

        disable = recorder()
        results, outcomes = startup_service.cleanup_startup(
            self.INVENTORY,
            "category_a_only",
            remove_action=recorder(fail_on={"Discord"}),
            task_names=broken_listing,
            disable_task=disable,
        )

        assert [r["id"] for r in results["removed"]] == ["AdobeAAMUpdater-1.0"]
        assert [r["id"] for r in results["failed"]] == ["Discord"]
        assert results["tasks_error"]
        assert disable.calls == []
        assert len(outcomes) == 2

    def test_chosen_ids_ignore_case(self, recorder):
        remove = recorder()
        startup_service.cleanup_startup(
            [InventoryItem("OneDrive", "OneDrive.exe /background", "HKCU\\Run")],
            "category_a_plus_chosen_b",
            chosen_ids=["onedrive"],
            remove_action=remove,
            task_names=None,
        )
        assert remove.calls == ["OneDrive"]

    @pytest.mark.parametrize(
        "raw,expected", [(None, 3), ("", 3), (5, 5), ("6", 6), (0, 3), (-2, 3), ("abc", 3), ([], 3)]
    )
    def test_term_length_validation(self, raw, expected):
        assert startup_service._term_length(raw) == expected

    def test_invalid_term_length_does_not_raise(self, on_windows, monkeypatch):
        monkeypatch.setattr(startup_service, "winreg", object())
        monkeypatch.setattr(startup_service, "enumerate_startup_items", lambda: [])
        result = startup_service.run_startup_cleanup(
            {"mode": "category_a_only", "min_search_term_length": "abc"}, None
        )
        assert result["status"] == "success"

    def test_mode_none_changes_nothing(self, recorder):
        remove = recorder()
        disable = recorder()
        results, outcomes = startup_service.cleanup_startup(
            self.INVENTORY, "none", remove_action=remove, task_names=lambda: self.TASKS, disable_task=disable
        )
        assert remove.calls == disable.calls == []
        assert outcomes == []

    def test_parse_task_list(self):
        output = (
            '"TaskName","Next Run Time","Status"\r\n'
            '"\\DiscordHelper","N/A","Ready"\r\n'
            '"\\Microsoft\\Windows\\Defrag\\ScheduledDefrag","N/A","Ready"\r\n'
            '"\\DiscordHelper","N/A","Ready"\r\n'
            "\r\n"
        )
        assert startup_service.parse_task_list(output) == [
            "\\DiscordHelper",
            "\\Microsoft\\Windows\\Defrag\\ScheduledDefrag",
        ]

    def test_invalid_mode(self, on_windows, monkeypatch):
        monkeypatch.setattr(startup_service, "winreg", object())
        result = startup_service.run_startup_cleanup({"mode": "nuke"}, None)
        assert result["status"] == "error"


class TestBloatware:
    JSON = (
        '[{"Name":"Microsoft.WindowsStore","PackageFullName":"Microsoft.WindowsStore_1_x64","Version":"1"},'
        '{"Name":"Microsoft.BingNews","PackageFullName":"Microsoft.BingNews_4_x64","Version":"4.1"},'
        '{"Name":"Microsoft.XboxApp","PackageFullName":"Microsoft.XboxApp_48_x64","Version":"48"},'
        '{"Name":"Microsoft.BingNews","PackageFullName":"Microsoft.BingNews_4_x64","Version":"4.1"},'
        '{"Name":"","PackageFullName":"broken"}]'
    )

    def test_parse_package_list(self):
        items = bloatware_service.parse_package_list(self.JSON)
        assert [i.id for i in items] == ["Microsoft.WindowsStore", "Microsoft.BingNews", "Microsoft.XboxApp"]
        assert items[1].source_location == "Microsoft.BingNews_4_x64"
        assert items[1].raw_value == "4.1"

    def test_parse_single_object(self):
        items = bloatware_service.parse_package_list(
            '{"Name":"Microsoft.BingNews","PackageFullName":"Microsoft.BingNews_4_x64"}'
        )
        assert len(items) == 1

    def test_parse_empty(self):
        assert bloatware_service.parse_package_list("") == []

    def test_remove_bloatware(self, recorder):
        remove = recorder()
        results, outcomes = bloatware_service.remove_bloatware(
            bloatware_service.parse_package_list(self.JSON), "all_non_essential", remove
        )
        assert remove.calls == ["Microsoft.BingNews", "Microsoft.XboxApp"]
        assert results["classification"]["protected"] == 1
        assert results["removal_counts"]["succeeded"] == 2

    def test_optional_apps_asked(self, recorder, prompt_log):
        remove = recorder()
        confirm = prompt_log({"Xbox": False})
        bloatware_service.remove_bloatware(
            bloatware_service.parse_package_list(self.JSON),
            "category_a_plus_chosen_b",
            remove,
            confirm=confirm,
        )
        assert remove.calls == ["Microsoft.BingNews"]
        assert len(confirm.prompts) == 1


class TestWindowsServices:
    TWEAKS = [
        ServiceTweak("DiagTrack", "Telemetry", "disabled"),
        ServiceTweak("Fax", "Fax", "disabled"),
        ServiceTweak("MapsBroker", "Maps", "demand"),
    ]

    def test_missing_services_skipped(self, recorder):
        action = recorder(fail_on={"MapsBroker"})
        results, outcomes = windows_services_service.optimize_services(
            self.TWEAKS, exists=lambda name: name != "Fax", action=action
        )

        assert action.calls == ["DiagTrack", "MapsBroker"]
        assert results["not_present"] == ["Fax"]
        assert [c["id"] for c in results["changed"]] == ["DiagTrack"]
        assert results["failed"][0]["start_type"] == "demand"

    def test_filter_by_name(self, on_windows, monkeypatch):
        seen = []

        def fake_optimize(tweaks):
            seen.extend(t.id for t in tweaks)
            return {"changed": [], "failed": [], "not_present": [], "counts": {}}, []

        monkeypatch.setattr(windows_services_service, "optimize_services", fake_optimize)
        result = windows_services_service.run_services_optimization(
            {"services": ["diagtrack", "Fax"]}, None
        )
        assert seen == ["DiagTrack", "Fax"]
        assert result["status"] == "success"

    def test_security_services_never_listed(self):
        ids = {t.id.lower() for t in windows_services_service.SERVICE_TWEAKS}
        assert not ids & {"windefend", "wuauserv", "mpssvc", "dhcp", "dnscache"}


class TestMemory:
    def test_trim_skips_system_and_self(self):
        trimmed_pids = []

        def trim(pid):
            trimmed_pids.append(pid)
            if pid == 300:
                raise OSError("access denied")
            return pid != 200

        trimmed, denied = memory_service.trim_working_sets([0, 4, os.getpid(), 100, 200, 300], trim)

        assert trimmed_pids == [100, 200, 300]
        assert (trimmed, denied) == (1, 2)

    def test_optimize_memory_reports_freed(self, caplog):
        caplog.set_level("INFO")
        samples = iter([6 * memory_service.GB, 5 * memory_service.GB])

        results = memory_service.optimize_memory(
            trim=lambda pid: True, used_bytes=lambda: next(samples), settle_seconds=0
        )

        assert results["freed_bytes"] == memory_service.GB
        assert "RAM Before: 6.0 GB" in caplog.text
        assert "[SUCCESS] RAM Freed: 1.0 GB" in caplog.text

    def test_freed_never_negative(self):
        samples = iter([1, 5])
        results = memory_service.optimize_memory(
            trim=lambda pid: False, used_bytes=lambda: next(samples), settle_seconds=0
        )
        assert results["freed_bytes"] == 0


class TestPrivacy:
    def test_partial_failure(self, recorder):
        tweaks = privacy_service.PRIVACY_TWEAKS[:3]
        action = recorder(fail_on={tweaks[0].id})

        results, outcomes = privacy_service.apply_privacy_shield(tweaks, action)

        assert len(action.calls) == 3
        assert results["counts"] == {"attempted": 3, "succeeded": 2, "failed": 1}
        assert results["failed"][0]["label"] == tweaks[0].label

    def test_tweaks_are_unique(self):
        ids = [t.id for t in privacy_service.PRIVACY_TWEAKS]
        assert len(ids) == len(set(ids))


class TestNetwork:
    def test_find_vpn_vm_adapters(self):
        hits = network_service.find_vpn_vm_adapters(
            ["Ethernet", "Wi-Fi", "NordLynx", "vEthernet (Default Switch)", "TAP-Windows Adapter V9"]
        )
        assert [h["adapter"] for h in hits] == [
            "NordLynx",
            "vEthernet (Default Switch)",
            "TAP-Windows Adapter V9",
        ]

    def test_reset_blockers(self):
        assert network_service.reset_blockers(["Ethernet"], domain_joined=False) == []
        reasons = network_service.reset_blockers(["Ethernet"], domain_joined=True)
        assert reasons == ["PC is joined to a domain"]

    def test_reset_when_safe(self, recorder):
        action = recorder()
        results, _ = network_service.optimize_network(["Ethernet"], False, action=action)

        assert action.calls == ["flush_dns", "tcp_autotuning", "winsock_reset", "ip_reset"]
        assert results["stack_reset"] is True

    def test_no_reset_with_vpn(self, recorder):
        action = recorder()
        results, _ = network_service.optimize_network(["Ethernet", "WireGuard Tunnel"], False, action=action)

        assert action.calls == ["flush_dns", "tcp_autotuning"]
        assert results["stack_reset"] is False
        assert results["reset_skipped_reasons"]

    def test_reset_disabled_by_task(self, recorder):
        action = recorder()
        results, _ = network_service.optimize_network(["Ethernet"], False, allow_stack_reset=False, action=action)
        assert action.calls == ["flush_dns", "tcp_autotuning"]
        assert results["reset_skipped_reasons"] == []

    def test_domain_check_failure_assumes_joined(self, monkeypatch):
        def boom(script, timeout=None):
            raise OSError("powershell missing")

        monkeypatch.setattr(network_service, "check_powershell", boom)
        assert network_service.is_domain_joined() is True


class TestDiskCleanup:
    def test_empty_directory(self, tmp_path):
        (tmp_path / "a.tmp").write_bytes(b"x" * 100)
        sub = tmp_path / "cache"
        sub.mkdir()
        (sub / "b.bin").write_bytes(b"y" * 50)

        stats = disk_cleanup_service.empty_directory(tmp_path)

        assert stats.entries_deleted == 2
        assert stats.bytes_freed == 150
        assert tmp_path.is_dir()
        assert list(tmp_path.iterdir()) == []

    def test_min_age_keeps_new_files(self, tmp_path):
        old = tmp_path / "old.tmp"
        new = tmp_path / "new.tmp"
        old.write_text("old")
        new.write_text("new")
        age(old, 3)

        stats = disk_cleanup_service.empty_directory(tmp_path, min_age_seconds=DAY)

        assert stats.entries_deleted == 1
        assert not old.exists()
        assert new.exists()

    def test_locked_entries_counted(self, tmp_path, monkeypatch):
        (tmp_path / "busy.tmp").write_text("in use")

        def locked(path):
            raise PermissionError("file in use")

        monkeypatch.setattr(disk_cleanup_service, "delete_path", locked)
        stats = disk_cleanup_service.empty_directory(tmp_path)
        assert (stats.entries_deleted, stats.entries_locked) == (0, 1)

    def test_missing_directory(self, tmp_path):
        stats = disk_cleanup_service.empty_directory(tmp_path / "gone")
        assert stats.entries_deleted == 0

    def test_cleanup_locations_deduplicated(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEMP", str(tmp_path))
        monkeypatch.setenv("TMP", str(tmp_path))
        monkeypatch.delenv("LOCALAPPDATA", raising=False)
        monkeypatch.delenv("SystemRoot", raising=False)
        monkeypatch.delenv("windir", raising=False)
        assert disk_cleanup_service.cleanup_locations() == [tmp_path]


class TestLogCleanup:
    def test_only_old_log_files_removed(self, tmp_path):
        old_log = tmp_path / "WinOptimizer_20240101_000000.log"
        new_log = tmp_path / "WinOptimizer_today.log"
        old_txt = tmp_path / "notes.txt"
        for path in (old_log, new_log, old_txt):
            path.write_text("log line\n")
        age(old_log, 40)
        age(old_txt, 40)

        stats = log_cleanup_service.clean_logs([tmp_path], retention_days=30)

        assert stats[0].entries_deleted == 1
        assert not old_log.exists()
        assert new_log.exists()
        assert old_txt.exists()

    def test_current_log_kept(self, tmp_path):
        current = tmp_path / "WinOptimizer_current.log"
        current.write_text("running\n")
        age(current, 90)

        log_cleanup_service.clean_logs([tmp_path], 30, current_log=str(current))
        assert current.exists()

    def test_run_log_cleanup(self, tmp_path, not_windows):
        old_log = tmp_path / "old.log"
        old_log.write_text("x")
        age(old_log, 10)

        result = log_cleanup_service.run_log_cleanup(
            {"type": "log_cleanup", "log_dir": str(tmp_path), "retention_days": 7}
        )

        assert result["status"] == "success"
        assert result["summary"]["results"]["files_deleted"] == 1

    def test_no_directories(self, tmp_path, not_windows):
        result = log_cleanup_service.run_log_cleanup({"log_dir": str(tmp_path / "nope")})
        assert result["status"] == "skipped"


class TestSystemRestore:
    @pytest.mark.parametrize(
        "output,reason",
        [
            ("A new system restore point cannot be created because one has already been created within the past 1440 minutes.", "throttled"),
            ("Checkpoint-Computer : Access is denied", "access_denied"),
            ("The service cannot be started because it is disabled", "protection_disabled"),
            ("Something else entirely", None),
        ],
    )
    def test_classify_failure(self, output, reason):
        assert system_restore_service._classify_failure(output) == reason

    def _fake_powershell(self, monkeypatch, returncode, stdout="", stderr=""):
        def fake(script, timeout=None):
            return subprocess.CompletedProcess(["powershell"], returncode, stdout, stderr)

        monkeypatch.setattr(system_restore_service, "run_powershell", fake)

    def test_created(self, monkeypatch):
        self._fake_powershell(monkeypatch, 0)
        result = system_restore_service.create_restore_point("Before tuning")
        assert result == {"restore_point_created": True, "description": "Before tuning"}

    def test_throttled(self, monkeypatch):
        self._fake_powershell(monkeypatch, 1, stderr="already been created within the past 1440 minutes")
        with pytest.raises(system_restore_service.RestorePointThrottled):
            system_restore_service.create_restore_point("x")

    def test_access_denied(self, monkeypatch):
        self._fake_powershell(monkeypatch, 1, stderr="Access is denied")
        with pytest.raises(system_restore_service.RestorePointError) as exc:
            system_restore_service.create_restore_point("x")
        assert exc.value.reason == "access_denied"

    def test_disabled_protection_reported_as_error(self, monkeypatch, on_windows):
        monkeypatch.setattr(system_restore_service, "recent_restore_point_age_minutes", lambda: None)

        def disabled(description):
            raise system_restore_service.RestorePointError(
                "System Protection is disabled.", "protection_disabled"
            )

        monkeypatch.setattr(system_restore_service, "create_restore_point", disabled)
        result = system_restore_service.run_system_restore({"type": "system_restore"})

        assert result["status"] == "error"
        assert result["summary"]["results"]["error_details"] == "protection_disabled"
        assert result["summary"]["results"]["description"] == "WinOptimizer-Backup"

    def test_recent_point_skips(self, monkeypatch, on_windows):
        monkeypatch.setattr(system_restore_service, "recent_restore_point_age_minutes", lambda: 5.0)
        result = system_restore_service.run_system_restore({"type": "system_restore"})
        assert result["status"] == "skipped"

    @pytest.mark.parametrize(
        "verify_stdout,verify_code,expected",
        [
            ("True\r\n", 0, True),
            ("False\r\n", 0, False),
            ("", 0, False),
            ("", 1, False),
        ],
    )
    def test_enable_protection_verified_by_output(
        self, monkeypatch, verify_stdout, verify_code, expected
    ):
        calls = []

        def fake(script, timeout=None):
            calls.append(script)
            if script == system_restore_service.PROTECTION_ENABLED_CHECK:
                return subprocess.CompletedProcess(["powershell"], verify_code, verify_stdout, "")
            return subprocess.CompletedProcess(["powershell"], 0, "Started VSS", "")

        monkeypatch.setattr(system_restore_service, "run_powershell", fake)
        monkeypatch.setattr(system_restore_service.time, "sleep", lambda seconds: None)

        ok, detail = system_restore_service.attempt_enable_system_protection()

        assert ok is expected
        assert detail == "Started VSS"
        assert calls[-1] == system_restore_service.PROTECTION_ENABLED_CHECK
