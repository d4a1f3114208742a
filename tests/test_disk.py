from pathlib import Path

from hostprobe.disk import (
    Disk,
    DiskKind,
    Disks,
    MountEntry,
    collect_disks,
    disk_kind,
    parse_mounts,
    removable_devices,
    unescape_mount_path,
)

SAMPLE_MOUNTS = """tmpfs /proc tmpfs rw,seclabel,relatime 0 0
proc /proc proc rw,nosuid,nodev,noexec,relatime 0 0
systemd-1 /proc/sys/fs/binfmt_misc autofs rw,relatime,fd=29,pgrp=1,timeout=0 0 0
tmpfs /sys tmpfs rw,seclabel,relatime 0 0
sysfs /sys sysfs rw,seclabel,nosuid,nodev,noexec,relatime 0 0
securityfs /sys/kernel/security securityfs rw,nosuid,nodev,noexec,relatime 0 0
cgroup2 /sys/fs/cgroup cgroup2 rw,seclabel,nosuid,nodev,noexec,relatime 0 0
pstore /sys/fs/pstore pstore rw,seclabel,nosuid,nodev,noexec,relatime 0 0
none /sys/fs/bpf bpf rw,nosuid,nodev,noexec,relatime,mode=700 0 0
configfs /sys/kernel/config configfs rw,nosuid,nodev,noexec,relatime 0 0
selinuxfs /sys/fs/selinux selinuxfs rw,relatime 0 0
debugfs /sys/kernel/debug debugfs rw,seclabel,nosuid,nodev,noexec,relatime 0 0
tmpfs /dev/shm tmpfs rw,seclabel,relatime 0 0
devpts /dev/pts devpts rw,seclabel,relatime,gid=5,mode=620,ptmxmode=666 0 0
tmpfs /sys/fs/selinux tmpfs rw,seclabel,relatime 0 0
/dev/vda2 /proc/filesystems xfs rw,seclabel,relatime,attr2,inode64 0 0
"""

FAKE_DEVICE = "/dev/hostprobe-test-device"


def test_parse_mounts_filters_pseudo_file_systems():
    assert parse_mounts(SAMPLE_MOUNTS) == [MountEntry("devpts", "/dev/pts", "devpts")]


def test_parse_mounts_keeps_run_media_and_drops_run():
    content = "/dev/sdb1 /run/media/usb vfat rw 0 0\n/dev/sdc1 /run/user ext4 rw 0 0\n"
    entries = parse_mounts(content)
    assert [entry.mount_point for entry in entries] == ["/run/media/usb"]


def test_parse_mounts_drops_nfs_and_sunrpc():
    content = "server:/x /mnt/x nfs rw 0 0\nsunrpc /mnt/y ext4 rw 0 0\n"
    assert parse_mounts(content) == []


def test_unescape_mount_path():
    assert unescape_mount_path("/mnt/my\\040disk") == "/mnt/my disk"
    assert unescape_mount_path("/a\\011b\\012c\\134d") == "/a\tb\nc\\d"


def test_parse_mounts_unescapes_mount_point():
    entries = parse_mounts("/dev/sda1 /mnt/my\\040disk ext4 rw 0 0\n")
    assert entries[0].mount_point == "/mnt/my disk"


def test_disk_kind_unknown_for_missing_device():
    assert disk_kind(FAKE_DEVICE) is DiskKind.UNKNOWN
    assert disk_kind("/dev/mapper/hostprobe-missing") is DiskKind.UNKNOWN


def test_collect_disks_reads_space(tmp_path):
    content = f"{FAKE_DEVICE} {tmp_path} ext4 rw 0 0\n"
    disks = collect_disks(content, [])
    assert len(disks) == 1
    disk = disks[0]
    assert disk.name == FAKE_DEVICE
    assert disk.file_system == "ext4"
    assert disk.mount_point == tmp_path
    assert disk.total_space > 0
    assert 0 <= disk.available_space <= disk.total_space
    assert disk.is_removable is False
    assert disk.kind is DiskKind.UNKNOWN


def test_collect_disks_marks_removable(tmp_path):
    content = f"{FAKE_DEVICE} {tmp_path} vfat rw 0 0\n"
    disks = collect_disks(content, [Path(FAKE_DEVICE)])
    assert [disk.is_removable for disk in disks] == [True]


def test_collect_disks_skips_missing_mount_point(tmp_path):
    content = f"{FAKE_DEVICE} {tmp_path / 'absent'} ext4 rw 0 0\n"
    assert collect_disks(content, []) == []


def test_disk_refresh(tmp_path):
    disk = Disk(DiskKind.SSD, FAKE_DEVICE, "ext4", tmp_path, 1, -1, False)
    assert disk.refresh() is True
    assert disk.available_space >= 0


def test_disk_refresh_fails_on_missing_mount(tmp_path):
    disk = Disk(DiskKind.SSD, FAKE_DEVICE, "ext4", tmp_path / "absent", 1, 5, False)
    assert disk.refresh() is False
    assert disk.available_space == 5


def test_removable_devices(tmp_path):
    target = tmp_path / "sdz"
    target.write_text("")
    (tmp_path / "usb-Example_Stick-0:0").symlink_to(target)
    (tmp_path / "ata-Example_Drive").symlink_to(target)
    (tmp_path / "usb-dangling").symlink_to(tmp_path / "nowhere")
    assert removable_devices(tmp_path) == [target.resolve()]


def test_removable_devices_missing_dir(tmp_path):
    assert removable_devices(tmp_path / "absent") == []


def test_disks_refresh_list(tmp_path):
    mounts = tmp_path / "mounts"
    mounts.write_text(f"{FAKE_DEVICE} {tmp_path} ext4 rw 0 0\n" + SAMPLE_MOUNTS)
    disks = Disks(mounts)
    disks.refresh_list()
    assert len(disks) == 1
    assert [disk.mount_point for disk in disks] == [tmp_path]


def test_disks_missing_mounts_file(tmp_path):
    disks = Disks(tmp_path / "absent")
    disks.refresh_list()
    assert len(disks) == 0