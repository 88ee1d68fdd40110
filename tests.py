#!/usr/bin/env python

import errno
import hashlib
import io
import os
import os.path
import shutil
import stat
import sys
import tempfile
import time
import unittest

from contextlib import redirect_stdout
from unittest import mock

import dupelink

testdata1 = "1234" * 1024 + "abc"
testdata2 = "1234" * 1024 + "xyz"  # Same size as testdata1
testdata3 = "foo"  # Smaller than the default minimum size
testdata4 = "1234" * 1024 + "abcd"  # One byte longer than testdata1


def get_inode(filename):
    return os.lstat(filename).st_ino


def default_options(**kwargs):
    options = dupelink._parse_command_line(get_default_options=True)
    for name, value in kwargs.items():
        setattr(options, name, value)
    return options


class FailingFileSystem(dupelink.FileSystem):
    """FileSystem whose primitives can be made to fail for given pathnames"""

    def __init__(self, fail_link=(), fail_rename=(), fail_unlink=(), no_hardlinks=False):
        self.fail_link = set(fail_link)
        self.fail_rename = set(fail_rename)
        self.fail_unlink = set(fail_unlink)
        self.no_hardlinks = no_hardlinks
        self.calls = []

    def can_hardlink(self, existing, new):
        if self.no_hardlinks:
            return False
        return dupelink.FileSystem.can_hardlink(self, existing, new)

    def link(self, existing, new):
        self.calls.append(("link", existing, new))
        if new in self.fail_link:
            raise OSError(errno.EXDEV, "Invalid cross-device link", new)
        dupelink.FileSystem.link(self, existing, new)

    def rename(self, src, dst):
        self.calls.append(("rename", src, dst))
        if src in self.fail_rename:
            raise OSError(errno.EACCES, "Permission denied", src)
        dupelink.FileSystem.rename(self, src, dst)

    def unlink(self, pathname):
        self.calls.append(("unlink", pathname))
        if pathname in self.fail_unlink:
            raise OSError(errno.EBUSY, "Device or resource busy", pathname)
        dupelink.FileSystem.unlink(self, pathname)


class TestModuleFunctions(unittest.TestCase):
    def test_humanize_number(self):
        f = dupelink._humanize_number
        self.assertEqual("0 bytes", f(0))
        self.assertEqual("1023 bytes", f(1023))
        self.assertEqual("1.000 KiB", f(1024))
        self.assertEqual("1.000 MiB", f(1024**2))
        self.assertEqual("1.000 GiB", f(1024**3))
        self.assertEqual("1.000 TiB", f(1024**4))
        self.assertEqual("1.000 PiB", f(1024**5))

    def test_humanized_number_to_bytes(self):
        f = dupelink._humanized_number_to_bytes
        self.assertEqual(0, f("0"))
        self.assertEqual(1023, f("1023"))
        self.assertEqual(1024, f("1k"))
        self.assertEqual(1024, f("1K"))
        self.assertEqual(1024**2, f("1m"))
        self.assertEqual(1024**3, f("1g"))
        self.assertEqual(1024**4, f("1t"))
        self.assertEqual(1024**5, f("1p"))

        self.assertRaises(ValueError, f, "")
        self.assertRaises(ValueError, f, "1kk")
        self.assertRaises(ValueError, f, "1j")
        self.assertRaises(ValueError, f, "k")

    def test_stream_digest(self):
        f = dupelink.stream_digest
        data = testdata1.encode("ascii")
        self.assertEqual(hashlib.sha256(data).hexdigest(), f(io.BytesIO(data)))
        self.assertEqual(f(io.BytesIO(data)), f(io.BytesIO(data)))
        self.assertNotEqual(f(io.BytesIO(data)), f(io.BytesIO(testdata2.encode("ascii"))))
        self.assertEqual(hashlib.sha512(data).hexdigest(), f(io.BytesIO(data), "sha512"))

    def test_stream_digest_reads_to_end(self):
        stream = io.BytesIO(b"x" * (dupelink._CHUNK_SIZE * 2 + 5))
        digest = dupelink.stream_digest(stream)
        self.assertEqual(b"", stream.read())
        self.assertEqual(hashlib.sha256(b"x" * (dupelink._CHUNK_SIZE * 2 + 5)).hexdigest(), digest)

    def test_content_digest_missing_file(self):
        root = tempfile.mkdtemp()
        try:
            self.assertRaises(OSError, dupelink.content_digest, os.path.join(root, "missing"))
        finally:
            os.rmdir(root)

    def test_file_identity(self):
        f = dupelink._file_identity
        stat_info = os.stat_result((stat.S_IFREG | 0o644, (5 << 32) | 7, 42, 1, 0, 0, 10, 0, 0, 0))
        self.assertEqual(dupelink.FileIdentity(42, 5, 7), f(stat_info))

        stat_info = os.stat_result((stat.S_IFREG | 0o644, 0, 42, 1, 0, 0, 10, 0, 0, 0))
        self.assertEqual(None, f(stat_info))

    def test_digest_choices_are_usable(self):
        for name in dupelink.DIGEST_CHOICES:
            self.assertTrue(dupelink.stream_digest(io.BytesIO(b"abc"), name))

    def test_weak_digests_not_offered(self):
        self.assertIn("sha256", dupelink.DIGEST_CHOICES)
        for name in ("md5", "sha1", "shake_128", "shake_256"):
            self.assertNotIn(name, dupelink.DIGEST_CHOICES)

    def test_size_bucket_states(self):
        bucket = dupelink._SizeBucket()
        self.assertEqual(dupelink._SizeBucket.EMPTY, bucket.state)
        bucket.make_pending("a")
        self.assertEqual(dupelink._SizeBucket.PENDING, bucket.state)
        self.assertEqual("a", bucket.activate())
        self.assertEqual(dupelink._SizeBucket.ACTIVE, bucket.state)
        bucket.add("d1", "a")
        bucket.add("d1", "b")
        bucket.add("d2", "c")
        self.assertEqual({"d1": ["a", "b"], "d2": ["c"]}, bucket.digests)

    def test_duplicate_set(self):
        s = dupelink.DuplicateSet(100, "d", ["a", "b", "c"])
        self.assertEqual("a", s.original)
        self.assertEqual(["b", "c"], s.duplicates)
        self.assertEqual(200, s.reclaimable_bytes())
        self.assertEqual(3, len(s))


class BaseTests(unittest.TestCase):
    # self.file_contents = { name: data }

    def tearDown(self):
        """Provide default tearDown() for all derived classes (for cleanup of
        files and dirs)."""
        self.remove_tempdir()

    def setup_tempdir(self):
        self.saved_cwd = os.getcwd()
        self.root = tempfile.mkdtemp()
        os.chdir(self.root)

        # Keep track of all files, and their content, for verifying later
        self.file_contents = {}

    def remove_tempdir(self):
        os.chdir(self.saved_cwd)
        shutil.rmtree(self.root)

    def verify_file_contents(self):
        for pathname, contents in self.file_contents.items():
            with open(pathname, "r") as f:
                actual = f.read()
                self.assertEqual(actual, contents)

    def make_file(self, pathname, contents):
        assert pathname not in self.file_contents
        assert not pathname.lstrip().startswith('/')
        dirname = os.path.dirname(pathname)
        if dirname and not os.path.isdir(dirname):
            os.makedirs(dirname)
        with open(pathname, 'w') as f:
            f.write(contents)
        self.file_contents[pathname] = contents

    def make_linked_file(self, src, dst):
        assert dst not in self.file_contents
        os.link(src, dst)
        self.file_contents[dst] = self.file_contents[src]

    def backup_files(self):
        found = []
        for dirpath, dirs, filenames in os.walk(self.root):
            found.extend(name for name in filenames if name.endswith(dupelink.BACKUP_SUFFIX))
        return found

    def scan(self, pathnames, **kwargs):
        filesystem = kwargs.pop("filesystem", None)
        grouper = dupelink.DuplicateGrouper(default_options(**kwargs), filesystem)
        return grouper.scan(pathnames), grouper.stats


class TestFileSystem(BaseTests):
    def setUp(self):
        self.setup_tempdir()
        self.make_file("a", testdata1)
        self.make_file("b", testdata1)
        self.make_linked_file("a", "c")
        self.fs = dupelink.FileSystem()

    def test_identity(self):
        self.assertEqual(self.fs.identity("a"), self.fs.identity("a"))
        self.assertEqual(self.fs.identity("a"), self.fs.identity("c"))
        self.assertNotEqual(self.fs.identity("a"), self.fs.identity("b"))
        self.assertEqual(os.lstat("a").st_dev, self.fs.identity("a").volume)

    def test_identity_unavailable(self):
        self.assertEqual(None, self.fs.identity("missing"))

    def test_can_hardlink_same_directory(self):
        self.assertTrue(self.fs.can_hardlink("a", "d"))


class TestGrouping(BaseTests):
    def setUp(self):
        self.setup_tempdir()

    def test_scenario_two_same_one_different(self):
        self.make_file("A", "X" * 100)
        self.make_file("B", "X" * 100)
        self.make_file("C", "Y" * 100)

        sets, stats = self.scan(["A", "B", "C"], min_file_size=1)

        self.assertEqual(1, len(sets))
        self.assertEqual(["A", "B"], sets[0].pathnames)
        self.assertEqual(100, sets[0].size)
        self.assertEqual(1, stats.unique_files)
        self.assertEqual(1, stats.num_duplicate_sets)
        self.assertEqual(2, stats.files_in_duplicate_sets)
        self.assertEqual(100, stats.reclaimable_bytes)

    def test_small_files_never_hashed(self):
        self.make_file("a", testdata3)
        self.make_file("b", testdata3)

        with mock.patch.object(dupelink, "content_digest") as digest:
            sets, stats = self.scan(["a", "b"])
            self.assertFalse(digest.called)

        self.assertEqual([], sets)
        self.assertEqual(2, stats.num_files_too_small)
        self.assertEqual(0, stats.num_digests_computed)

    def test_max_size(self):
        self.make_file("a", testdata1)
        self.make_file("b", testdata1)

        sets, stats = self.scan(["a", "b"], max_file_size=1024)

        self.assertEqual([], sets)
        self.assertEqual(2, stats.num_files_too_large)

    def test_distinct_sizes_never_grouped_or_hashed(self):
        self.make_file("a", testdata1)
        self.make_file("b", testdata4)

        sets, stats = self.scan(["a", "b"])

        self.assertEqual([], sets)
        self.assertEqual(0, stats.num_digests_computed)
        self.assertEqual(2, stats.unique_files)

    def test_same_size_different_content(self):
        self.make_file("a", testdata1)
        self.make_file("b", testdata2)
        self.make_file("c", testdata1)
        self.make_file("d", testdata2)
        self.make_file("e", testdata4)

        sets, stats = self.scan(["a", "b", "c", "d", "e"])

        self.assertEqual([["a", "c"], ["b", "d"]], [s.pathnames for s in sets])
        self.assertNotEqual(sets[0].digest, sets[1].digest)
        self.assertEqual(4, stats.num_digests_computed)
        self.assertEqual(1, stats.unique_files)
        self.assertEqual(2 * len(testdata1), stats.reclaimable_bytes)

    def test_reclaimable_bytes(self):
        for name in ("a", "b", "c", "d"):
            self.make_file(name, testdata1)

        sets, stats = self.scan(["a", "b", "c", "d"])

        self.assertEqual(1, len(sets))
        self.assertEqual(3 * len(testdata1), sets[0].reclaimable_bytes())
        self.assertEqual(3 * len(testdata1), stats.reclaimable_bytes)
        self.assertEqual(len(testdata1) * 3 // 1024, stats.reclaimable_units()['KiB'])

    def test_pre_linked_pair(self):
        self.make_file("D", testdata1)
        self.make_linked_file("D", "E")

        with mock.patch.object(dupelink, "content_digest") as digest:
            sets, stats = self.scan(["D", "E"])
            self.assertFalse(digest.called)

        self.assertEqual([], sets)
        self.assertEqual(1, stats.hardlinked_previously)
        self.assertEqual(len(testdata1), stats.bytes_saved_previously)

    def test_pre_linked_pair_with_copy(self):
        self.make_file("d", testdata1)
        self.make_linked_file("d", "e")
        self.make_file("f", testdata1)

        sets, stats = self.scan(["d", "e", "f"])

        self.assertEqual([["d", "f"]], [s.pathnames for s in sets])
        self.assertEqual(1, stats.hardlinked_previously)

    def test_first_seen_is_original(self):
        self.make_file("a", testdata1)
        self.make_file("b", testdata1)

        sets, stats = self.scan(["b", "a"])

        self.assertEqual("b", sets[0].original)
        self.assertEqual(["a"], sets[0].duplicates)

    def test_shortest_path_policy(self):
        self.make_file("dir1/longer_name.ext", testdata1)
        self.make_file("a", testdata1)
        self.make_file("dir2/x", testdata1)

        sets, stats = self.scan(["dir1/longer_name.ext", "a", "dir2/x"], original="shortest-path")

        self.assertEqual(["a", "dir1/longer_name.ext", "dir2/x"], sets[0].pathnames)

    def test_oldest_policy(self):
        self.make_file("a", testdata1)
        self.make_file("b", testdata1)
        self.make_file("c", testdata1)
        now = time.time()
        os.utime("a", (now, now))
        os.utime("b", (now - 100, now - 100))
        os.utime("c", (now - 100, now - 100))

        sets, stats = self.scan(["a", "b", "c"], original="oldest")

        self.assertEqual(["b", "a", "c"], sets[0].pathnames)

    def test_hash_failure_drops_file(self):
        for name in ("a", "b", "c"):
            self.make_file(name, testdata1)
        real_digest = dupelink.content_digest

        def failing_digest(pathname, algorithm):
            if pathname == "b":
                raise IOError(errno.EACCES, "Permission denied", pathname)
            return real_digest(pathname, algorithm)

        with mock.patch.object(dupelink, "content_digest", side_effect=failing_digest):
            sets, stats = self.scan(["a", "b", "c"])

        self.assertEqual([["a", "c"]], [s.pathnames for s in sets])
        self.assertEqual(1, stats.num_unreadable_files)

    def test_pending_file_hash_failure(self):
        for name in ("a", "b", "c"):
            self.make_file(name, testdata1)
        real_digest = dupelink.content_digest

        def failing_digest(pathname, algorithm):
            if pathname == "a":
                raise OSError(errno.EBUSY, "Device or resource busy", pathname)
            return real_digest(pathname, algorithm)

        with mock.patch.object(dupelink, "content_digest", side_effect=failing_digest):
            sets, stats = self.scan(["a", "b", "c"])

        self.assertEqual([["b", "c"]], [s.pathnames for s in sets])

    def test_missing_and_non_regular_files(self):
        self.make_file("a", testdata1)
        self.make_file("b", testdata1)
        os.symlink("a", "symlink")

        sets, stats = self.scan(["missing", "a", "symlink", "b"])

        self.assertEqual([["a", "b"]], [s.pathnames for s in sets])
        self.assertEqual(1, stats.num_unreadable_files)
        self.assertEqual(1, stats.num_non_regular_files)
        self.assertEqual(4, stats.files_scanned)

    def test_same_pathname_twice(self):
        self.make_file("a", testdata1)

        with mock.patch.object(dupelink.FileSystem, "identity", return_value=None):
            sets, stats = self.scan(["a", "a"])

        self.assertEqual([], sets)
        self.assertEqual(1, stats.num_identity_unavailable)

    def test_identity_unavailable_falls_back_to_hashing(self):
        self.make_file("a", testdata1)
        self.make_linked_file("a", "b")

        with mock.patch.object(dupelink.FileSystem, "identity", return_value=None):
            sets, stats = self.scan(["a", "b"])

        self.assertEqual([["a", "b"]], [s.pathnames for s in sets])
        self.assertEqual(0, stats.hardlinked_previously)
        self.assertEqual(2, stats.num_identity_unavailable)

    def test_progress(self):
        for name in ("a", "b", "c"):
            self.make_file(name, testdata1)
        calls = []

        grouper = dupelink.DuplicateGrouper(default_options())
        grouper.scan(["a", "b", "c"], progress=lambda count, total: calls.append((count, total)))

        self.assertEqual([(1, 3), (2, 3), (3, 3)], calls)

    def test_progress_printer(self):
        output = io.StringIO()
        progress = dupelink._progress_printer(output)
        for count in range(1, 101):
            progress(count, 100)
        self.assertEqual("50% (50/100)\r100% (100/100)\r\n", output.getvalue())

    def test_string_argument(self):
        self.make_file("a", testdata1)
        sets, stats = self.scan("a")
        self.assertEqual([], sets)
        self.assertEqual(1, stats.files_scanned)


class TestConsolidation(BaseTests):
    def setUp(self):
        self.setup_tempdir()
        self.make_file("A", testdata1)
        self.make_file("B", testdata1)
        self.make_file("C", testdata1)

    def consolidate(self, sets, filesystem=None):
        consolidator = dupelink.Consolidator(default_options(), filesystem)
        consolidator.consolidate(sets)
        return consolidator.stats

    def test_consolidate_pair(self):
        sets, stats = self.scan(["A", "B"])

        link_stats = self.consolidate(sets)

        self.verify_file_contents()
        self.assertEqual(get_inode("A"), get_inode("B"))
        self.assertEqual(dupelink.FileSystem().identity("A"), dupelink.FileSystem().identity("B"))
        self.assertEqual([], self.backup_files())
        self.assertEqual([dupelink.LINKED], [o.kind for o in link_stats.outcomes])
        self.assertEqual(len(testdata1), link_stats.bytes_saved_thisrun)

    def test_consolidate_keeps_original_inode(self):
        inode_a = get_inode("A")
        sets, stats = self.scan(["A", "B", "C"])

        self.consolidate(sets)

        self.verify_file_contents()
        self.assertEqual(inode_a, get_inode("B"))
        self.assertEqual(inode_a, get_inode("C"))
        self.assertEqual(3, os.lstat("A").st_nlink)

    def test_idempotent(self):
        sets, stats = self.scan(["A", "B", "C"])
        self.consolidate(sets)

        sets_again, stats_again = self.scan(["A", "B", "C"])
        self.assertEqual([], sets_again)
        self.assertEqual(2, stats_again.hardlinked_previously)

        # Replaying the stale sets changes nothing either
        filesystem = FailingFileSystem()
        link_stats = self.consolidate(sets, filesystem)
        self.assertEqual([dupelink.ALREADY_LINKED] * 2, [o.kind for o in link_stats.outcomes])
        self.assertEqual([], filesystem.calls)
        self.verify_file_contents()

    def test_link_failure_restores_duplicate(self):
        inode_b = get_inode("B")
        sets, stats = self.scan(["A", "B"])

        link_stats = self.consolidate(sets, FailingFileSystem(fail_link=["B"]))

        self.verify_file_contents()
        self.assertEqual(inode_b, get_inode("B"))
        self.assertNotEqual(get_inode("A"), get_inode("B"))
        self.assertEqual([], self.backup_files())
        self.assertEqual([dupelink.RESTORED], [o.kind for o in link_stats.outcomes])
        self.assertEqual([], link_stats.stranded)

    def test_link_failure_continues_with_rest_of_set(self):
        sets, stats = self.scan(["A", "B", "C"])

        link_stats = self.consolidate(sets, FailingFileSystem(fail_link=["B"]))

        self.verify_file_contents()
        self.assertNotEqual(get_inode("A"), get_inode("B"))
        self.assertEqual(get_inode("A"), get_inode("C"))
        self.assertEqual([dupelink.RESTORED, dupelink.LINKED], [o.kind for o in link_stats.outcomes])

    def test_restore_failure_is_stranded(self):
        sets, stats = self.scan(["A", "B"])
        backup = "B" + dupelink.BACKUP_SUFFIX
        filesystem = FailingFileSystem(fail_link=["B"], fail_rename=[backup])

        link_stats = self.consolidate(sets, filesystem)

        self.assertFalse(os.path.exists("B"))
        with open(backup) as f:
            self.assertEqual(testdata1, f.read())
        self.assertEqual(1, len(link_stats.stranded))
        self.assertEqual(backup, link_stats.stranded[0].detail)
        del self.file_contents["B"]
        self.verify_file_contents()

    def test_backup_rename_failure_leaves_duplicate(self):
        inode_b = get_inode("B")
        sets, stats = self.scan(["A", "B"])
        filesystem = FailingFileSystem(fail_rename=["B"])

        link_stats = self.consolidate(sets, filesystem)

        self.verify_file_contents()
        self.assertEqual(inode_b, get_inode("B"))
        self.assertEqual([dupelink.RENAME_FAILED], [o.kind for o in link_stats.outcomes])
        self.assertFalse([call for call in filesystem.calls if call[0] == "link"])

    def test_unsupported_does_not_touch_files(self):
        sets, stats = self.scan(["A", "B"])
        filesystem = FailingFileSystem(no_hardlinks=True)

        link_stats = self.consolidate(sets, filesystem)

        self.verify_file_contents()
        self.assertNotEqual(get_inode("A"), get_inode("B"))
        self.assertEqual([dupelink.UNSUPPORTED], [o.kind for o in link_stats.outcomes])
        self.assertEqual([], filesystem.calls)

    def test_existing_backup_name(self):
        sets, stats = self.scan(["A", "B"])
        self.make_file("B" + dupelink.BACKUP_SUFFIX, "unrelated")

        link_stats = self.consolidate(sets)

        self.verify_file_contents()
        self.assertNotEqual(get_inode("A"), get_inode("B"))
        self.assertEqual([dupelink.BACKUP_EXISTS], [o.kind for o in link_stats.outcomes])

    def test_modified_after_scan(self):
        sets, stats = self.scan(["A", "B"])
        with open("B", "a") as f:
            f.write("more")
        self.file_contents["B"] = testdata1 + "more"

        link_stats = self.consolidate(sets)

        self.verify_file_contents()
        self.assertEqual([dupelink.MODIFIED], [o.kind for o in link_stats.outcomes])

    def test_same_size_edit_after_scan(self):
        sets, stats = self.scan(["A", "B"])
        with open("B", "w") as f:
            f.write(testdata2)
        later = os.lstat("B").st_mtime + 10
        os.utime("B", (later, later))
        self.file_contents["B"] = testdata2

        link_stats = self.consolidate(sets)

        self.verify_file_contents()
        self.assertNotEqual(get_inode("A"), get_inode("B"))
        self.assertEqual([], self.backup_files())
        self.assertEqual([dupelink.MODIFIED], [o.kind for o in link_stats.outcomes])
        self.assertEqual("B", link_stats.outcomes[0].detail)

    def test_original_touched_after_scan(self):
        sets, stats = self.scan(["A", "B"])
        later = os.lstat("A").st_mtime + 10
        os.utime("A", (later, later))

        link_stats = self.consolidate(sets)

        self.verify_file_contents()
        self.assertNotEqual(get_inode("A"), get_inode("B"))
        self.assertEqual([dupelink.MODIFIED], [o.kind for o in link_stats.outcomes])
        self.assertEqual("A", link_stats.outcomes[0].detail)

    def test_scan_stat_carried_in_set(self):
        sets, stats = self.scan(["A", "B"])
        self.assertEqual(["A", "B"], sorted(sets[0].stat_infos))
        self.assertEqual(os.lstat("B").st_ino, sets[0].stat_infos["B"].st_ino)

    def test_backup_unlink_failure(self):
        sets, stats = self.scan(["A", "B"])
        backup = "B" + dupelink.BACKUP_SUFFIX

        link_stats = self.consolidate(sets, FailingFileSystem(fail_unlink=[backup]))

        self.verify_file_contents()
        self.assertEqual(get_inode("A"), get_inode("B"))
        self.assertTrue(os.path.exists(backup))
        self.assertEqual([dupelink.BACKUP_LEFT], [o.kind for o in link_stats.outcomes])
        self.assertEqual([], link_stats.stranded)


class TestCommandLine(BaseTests):
    def setUp(self):
        self.setup_tempdir()
        self.saved_argv = sys.argv

        self.make_file("dir1/name1.ext", testdata1)
        self.make_file("dir1/name2.ext", testdata1)
        self.make_file("dir1/name3.ext", testdata2)
        self.make_file("dir2/name1.ext", testdata1)
        self.make_file("dir2/name1.noext", testdata1)
        self.make_file("dir3/name1.ext", testdata2)
        self.make_file("dir4/small1.ext", testdata3)
        self.make_file("dir4/small2.ext", testdata3)

    def tearDown(self):
        sys.argv = self.saved_argv
        BaseTests.tearDown(self)

    def run_main(self, *args):
        sys.argv = ["dupelink.py"] + list(args)
        with redirect_stdout(io.StringIO()) as output:
            status = dupelink.main()
        return status, output.getvalue()

    def test_dry_run(self):
        status, output = self.run_main("-q", "--dry-run", self.root)

        self.assertEqual(0, status)
        self.verify_file_contents()
        for pathname in self.file_contents:
            self.assertEqual(1, os.lstat(pathname).st_nlink)

    def test_enable_linking(self):
        status, output = self.run_main("-q", "--enable-linking", self.root)

        self.assertEqual(0, status)
        self.verify_file_contents()
        self.assertEqual(get_inode("dir1/name1.ext"), get_inode("dir1/name2.ext"))
        self.assertEqual(get_inode("dir1/name1.ext"), get_inode("dir2/name1.ext"))
        self.assertEqual(get_inode("dir1/name1.ext"), get_inode("dir2/name1.noext"))
        self.assertEqual(get_inode("dir1/name3.ext"), get_inode("dir3/name1.ext"))
        self.assertNotEqual(get_inode("dir4/small1.ext"), get_inode("dir4/small2.ext"))
        self.assertEqual([], self.backup_files())

    def test_default_directory_is_cwd(self):
        status, output = self.run_main("-q", "--enable-linking")

        self.assertEqual(0, status)
        self.assertEqual(get_inode("dir1/name1.ext"), get_inode("dir2/name1.ext"))

    def test_min_size(self):
        status, output = self.run_main("-q", "--enable-linking", "--min-size", "1", self.root)

        self.assertEqual(0, status)
        self.verify_file_contents()
        self.assertEqual(get_inode("dir4/small1.ext"), get_inode("dir4/small2.ext"))

    def test_match(self):
        status, output = self.run_main("-q", "--enable-linking", "-m", "*.noext", "-m", "name2*", self.root)

        self.assertEqual(0, status)
        self.assertEqual(get_inode("dir1/name2.ext"), get_inode("dir2/name1.noext"))
        self.assertNotEqual(get_inode("dir1/name1.ext"), get_inode("dir1/name2.ext"))

    def test_exclude(self):
        status, output = self.run_main("-q", "--enable-linking", "-x", "dir2", "-x", "name3*", self.root)

        self.assertEqual(0, status)
        self.assertEqual(get_inode("dir1/name1.ext"), get_inode("dir1/name2.ext"))
        self.assertNotEqual(get_inode("dir1/name1.ext"), get_inode("dir2/name1.ext"))
        self.assertNotEqual(get_inode("dir1/name3.ext"), get_inode("dir3/name1.ext"))

    def test_prompt_declined(self):
        with mock.patch("builtins.input", return_value="n"):
            status, output = self.run_main(self.root)

        self.assertEqual(0, status)
        self.assertIn("Press 'y'", output)
        self.assertNotEqual(get_inode("dir1/name1.ext"), get_inode("dir1/name2.ext"))

    def test_prompt_accepted(self):
        with mock.patch("builtins.input", return_value="y"):
            status, output = self.run_main(self.root)

        self.assertEqual(0, status)
        self.assertEqual(get_inode("dir1/name1.ext"), get_inode("dir1/name2.ext"))
        self.assertIn("Hardlinked this run        : 4", output)

    def test_prompt_end_of_input(self):
        with mock.patch("builtins.input", side_effect=EOFError):
            status, output = self.run_main(self.root)

        self.assertEqual(0, status)
        self.assertNotEqual(get_inode("dir1/name1.ext"), get_inode("dir1/name2.ext"))

    def test_statistics_output(self):
        status, output = self.run_main("--dry-run", "-v", self.root)

        self.assertEqual(0, status)
        self.assertIn("Files scanned              : 8", output)
        self.assertIn("Unique files               : 2", output)
        self.assertIn("Duplicate sets             : 2", output)
        self.assertIn("Files in duplicate sets    : 6", output)
        self.assertIn("Pre-existing hardlinks     : 0", output)
        self.assertIn("Reclaimable bytes          : %s" % (4 * len(testdata1)), output)
        self.assertIn("Original : %s" % self.root, output)

    def test_leftover_backup_skipped(self):
        self.make_file("dir5/name1.ext" + dupelink.BACKUP_SUFFIX, testdata1)

        status, output = self.run_main("-q", "--enable-linking", self.root)

        self.assertEqual(0, status)
        self.assertEqual(1, os.lstat("dir5/name1.ext" + dupelink.BACKUP_SUFFIX).st_nlink)

    def test_stranded_exit_status(self):
        class StrandingFileSystem(dupelink.FileSystem):
            def link(self, existing, new):
                raise OSError(errno.EPERM, "Operation not permitted", new)

            def rename(self, src, dst):
                if src.endswith(dupelink.BACKUP_SUFFIX):
                    raise OSError(errno.EACCES, "Permission denied", src)
                super().rename(src, dst)

        with mock.patch.object(dupelink, "FileSystem", StrandingFileSystem):
            with mock.patch("sys.stderr", io.StringIO()):
                status, output = self.run_main("-q", "--enable-linking", self.root)

        self.assertEqual(3, status)
        # Three duplicates of testdata1 and one of testdata2
        self.assertEqual(4, len(self.backup_files()))

    def test_bad_min_size(self):
        sys.argv = ["dupelink.py", "-q", "--min-size", "1kk", self.root]
        with mock.patch("sys.stderr", io.StringIO()):
            with self.assertRaises(SystemExit) as cm:
                dupelink.main()
        self.assertEqual(2, cm.exception.code)

    def test_bad_digest(self):
        sys.argv = ["dupelink.py", "-q", "--digest", "crc32", self.root]
        with mock.patch("sys.stderr", io.StringIO()):
            with self.assertRaises(SystemExit) as cm:
                dupelink.main()
        self.assertEqual(2, cm.exception.code)

    def test_weak_digest_rejected(self):
        sys.argv = ["dupelink.py", "-q", "--digest", "md5", self.root]
        with mock.patch("sys.stderr", io.StringIO()):
            with self.assertRaises(SystemExit) as cm:
                dupelink.main()
        self.assertEqual(2, cm.exception.code)

    def test_linking_and_dry_run_exclusive(self):
        sys.argv = ["dupelink.py", "--enable-linking", "--dry-run", self.root]
        with mock.patch("sys.stderr", io.StringIO()):
            with self.assertRaises(SystemExit) as cm:
                dupelink.main()
        self.assertEqual(2, cm.exception.code)


if __name__ == '__main__':
    unittest.main()
