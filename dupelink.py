#!/usr/bin/env python

# dupelink - Goes through a directory structure, finds files with identical
# content, and optionally replaces the redundant copies with hardlinks to a
# single original.
#
# Copyright 2007-2018  Antti Kaihola, Carl Henrik Lunde, Chad Netzer, et al
# Copyright 2003-2018  John L. Villalovos, Hillsboro, Oregon
#
# This program is free software; you can redistribute it and/or modify it under
# the terms of the GNU General Public License as published by the Free Software
# Foundation; either version 2 of the License, or (at your option) any later
# version.
#
# This program is distributed in the hope that it will be useful, but WITHOUT
# ANY WARRANTY; without even the implied warranty of MERCHANTABILITY or FITNESS
# FOR A PARTICULAR PURPOSE.  See the GNU General Public License for more
# details.
#
# You should have received a copy of the GNU General Public License along with
# this program; if not, write to the Free Software Foundation, Inc., 59 Temple
# Place, Suite 330, Boston, MA  02111-1307, USA.

import fnmatch as _fnmatch
import hashlib as _hashlib
import logging as _logging
import os as _os
import stat as _stat
import sys as _sys
import time as _time

from collections import defaultdict as _defaultdict
from collections import namedtuple as _namedtuple
from optparse import OptionParser as _OptionParser
from optparse import OptionGroup as _OptionGroup
from optparse import SUPPRESS_HELP as _SUPPRESS_HELP
from optparse import TitledHelpFormatter as _TitledHelpFormatter

__all__ = ["DuplicateGrouper", "DuplicateSet", "Consolidator", "DedupeStats",
           "FileSystem", "FileIdentity", "LinkOutcome",
           "stream_digest", "content_digest", "matched_pathnames"]

# global declarations
__version__ = '0.1'
_VERSION = "0.1 - 2026-10-19 (19-Oct-2026)"

DEFAULT_MIN_FILE_SIZE = "1k"
DEFAULT_DIGEST = "sha256"
BACKUP_SUFFIX = "._tmp_while_linking"

ORIGINAL_POLICIES = ("first-seen", "shortest-path", "oldest")

# md5 and sha1 have practical collisions, and shake_* digests need an
# explicit length
DIGEST_CHOICES = sorted(name for name in _hashlib.algorithms_guaranteed
                        if name.startswith(("sha2", "sha3_", "sha384", "sha512", "blake2")))

_CHUNK_SIZE = 1024 * 1024
_PROGRESS_INTERVAL = 50

# Per-duplicate consolidation outcomes
LINKED = "linked"
ALREADY_LINKED = "already_linked"
MODIFIED = "modified"
UNSUPPORTED = "unsupported"
BACKUP_EXISTS = "backup_exists"
RENAME_FAILED = "rename_failed"
RESTORED = "restored"
STRANDED = "stranded"
BACKUP_LEFT = "backup_left"

FileIdentity = _namedtuple("FileIdentity", "volume index_high index_low")
LinkOutcome = _namedtuple("LinkOutcome", "kind original duplicate detail")


def _parse_command_line(get_default_options=False):
    usage = "usage: %prog [options] [ directory ... ]"
    version = "%prog: " + _VERSION
    description = """\
This is a tool to scan directories for files with identical content, report
the space that could be reclaimed, and replace the duplicates with hardlinks to
a single original.  With no directory, the current directory is scanned."""

    formatter = _TitledHelpFormatter(max_help_position=26)
    parser = _OptionParser(usage=usage,
                           version=version,
                           description=description,
                           formatter=formatter)
    parser.add_option("-q", "--no-stats", dest="printstats",
                      help="Do not print the statistics",
                      action="store_false", default=True,)

    parser.add_option("-v", "--verbose", dest="verbosity",
                      help="Increase verbosity level (Up to 3 times)",
                      action="count", default=0,)

    parser.add_option("--enable-linking", dest="linking_enabled",
                      help="Perform the hardlinking without asking",
                      action="store_true", default=False,)

    parser.add_option("-n", "--dry-run", dest="dry_run",
                      help="Only report, never ask to link",
                      action="store_true", default=False,)

    # hidden debug option, each repeat increases debug level (long option only)
    parser.add_option("-d", "--debug", dest="debug_level",
                      help=_SUPPRESS_HELP,
                      action="count", default=0,)

    group = _OptionGroup(parser, title="File Matching", description="""\
File size and full content digest must match for files to be linked.  The
first file found in a set of duplicates is kept as the original unless
--original says otherwise.
""")
    parser.add_option_group(group)

    group.add_option("-s", "--min-size", dest="min_file_size", metavar="SZ",
                     help="Minimum file size (default: %default)",
                     default=DEFAULT_MIN_FILE_SIZE,)

    group.add_option("-S", "--max-size", dest="max_file_size", metavar="SZ",
                     help="Maximum file size (Can add 'k', 'm', etc.)",
                     default=None,)

    group.add_option("--digest", dest="digest", metavar="NAME",
                     help="Content digest algorithm (default: %default)",
                     default=DEFAULT_DIGEST,)

    group.add_option("--original", dest="original", metavar="POLICY",
                     help="Which duplicate is kept: %s (default: %%default)" % ", ".join(ORIGINAL_POLICIES),
                     type="choice", choices=ORIGINAL_POLICIES,
                     default=ORIGINAL_POLICIES[0],)

    group = _OptionGroup(parser, title="Name Matching (may specify multiple times)",)
    parser.add_option_group(group)

    group.add_option("-m", "--match", dest="matches", metavar="GLOB",
                     help="Shell-style pattern used to match filenames",
                     action="append", default=[],)

    group.add_option("-x", "--exclude", dest="excludes", metavar="GLOB",
                     help="Shell-style pattern used to exclude files/dirs",
                     action="append", default=[],)

    # Allow for a way to get a default options object (for library use)
    if get_default_options:
        (options, args) = parser.parse_args([])
        options_validation(parser, options)
        return options

    (options, args) = parser.parse_args()
    if not args:
        args = [_os.curdir]
    args = [_os.path.abspath(_os.path.expanduser(dirname)) for dirname in args]
    for dirname in args:
        if not _os.path.isdir(dirname):
            parser.error("%s is NOT a directory" % dirname)

    if options.linking_enabled and options.dry_run:
        parser.error("--enable-linking and --dry-run are mutually exclusive")

    options_validation(parser, options)

    return options, args


def options_validation(parser, options):
    if options.debug_level > 1:
        _logging.getLogger().setLevel(_logging.DEBUG)

    # Convert "humanized" size inputs to integer bytes
    try:
        options.min_file_size = _humanized_number_to_bytes(options.min_file_size)
    except ValueError:
        parser.error("option -s: invalid integer value: '%s'" % options.min_file_size)
    if options.max_file_size is not None:
        try:
            options.max_file_size = _humanized_number_to_bytes(options.max_file_size)
        except ValueError:
            parser.error("option -S: invalid integer value: '%s'" % options.max_file_size)
    if options.min_file_size < 0:
        parser.error("--min-size cannot be negative")
    if options.max_file_size is not None and options.max_file_size < options.min_file_size:
        parser.error("--max-size cannot be smaller than --min-size")

    options.digest = options.digest.lower()
    if options.digest not in DIGEST_CHOICES:
        parser.error("--digest must be one of: %s" % ", ".join(DIGEST_CHOICES))

    # Say so early, since a quiet run over a large tree can take a long time
    # before the first link is made.
    if options.linking_enabled:
        print("----- Hardlinking enabled.  The filesystem will be modified -----")


class FileSystem:
    """Filesystem primitives used while grouping and linking.

    Everything that touches directory entries or file identities goes through
    here, so a filesystem without hardlinks (or a test wanting to force a
    failure) only needs a different FileSystem.
    """

    def lstat(self, pathname):
        return _os.lstat(pathname)

    def identity(self, pathname):
        """Return the FileIdentity of pathname, or None if unavailable.

        The file is opened read-only just long enough to fstat() it.
        """
        try:
            fd = _os.open(pathname, _os.O_RDONLY | getattr(_os, "O_BINARY", 0))
        except OSError as error:
            _logging.debug("Identity unavailable for %s\n%s" % (pathname, error))
            return None
        try:
            stat_info = _os.fstat(fd)
        except OSError as error:
            _logging.debug("Identity unavailable for %s\n%s" % (pathname, error))
            return None
        finally:
            _os.close(fd)
        return _file_identity(stat_info)

    def can_hardlink(self, existing, new):
        """Return True if a link to existing could be created at new."""
        if not hasattr(_os, "link"):
            return False
        new_dirname = _os.path.dirname(_os.path.abspath(new))
        try:
            return _os.lstat(existing).st_dev == _os.lstat(new_dirname).st_dev
        except OSError as error:
            _logging.warning("Unable to get stat info for: %s or %s\n%s" % (existing, new_dirname, error))
            return False

    def exists(self, pathname):
        return _os.path.lexists(pathname)

    def link(self, existing, new):
        _os.link(existing, new)

    def rename(self, src, dst):
        _os.rename(src, dst)

    def unlink(self, pathname):
        _os.unlink(pathname)


class DuplicateSet:
    """Pathnames sharing one size and one content digest.

    The first pathname is the original, that all others get linked to.
    stat_infos maps each pathname to its stat result from the scan.
    """

    def __init__(self, size, digest, pathnames, stat_infos=None):
        self.size = size
        self.digest = digest
        self.pathnames = list(pathnames)
        self.stat_infos = dict(stat_infos or {})

    @property
    def original(self):
        return self.pathnames[0]

    @property
    def duplicates(self):
        return self.pathnames[1:]

    def reclaimable_bytes(self):
        return (len(self.pathnames) - 1) * self.size

    def __len__(self):
        return len(self.pathnames)

    def __iter__(self):
        return iter(self.pathnames)

    def __repr__(self):
        return "<DuplicateSet size=%d count=%d original=%s>" % (self.size, len(self), self.original)


class _SizeBucket:
    """Per file size state.  Starts EMPTY, the first file makes it PENDING
    (nothing hashed), and the second promotes it to ACTIVE, where every file
    is filed under its content digest."""

    EMPTY = "empty"
    PENDING = "pending"
    ACTIVE = "active"

    def __init__(self):
        self.state = self.EMPTY
        self.pending = None
        # digests <- {digest: [pathname]}, only when ACTIVE
        self.digests = None

    def make_pending(self, pathname):
        assert self.state == self.EMPTY
        self.state = self.PENDING
        self.pending = pathname

    def activate(self):
        """Switch to ACTIVE, and return the pending pathname to be hashed."""
        assert self.state == self.PENDING
        pathname = self.pending
        self.state = self.ACTIVE
        self.pending = None
        self.digests = {}
        return pathname

    def add(self, digest, pathname):
        assert self.state == self.ACTIVE
        self.digests.setdefault(digest, []).append(pathname)


class DuplicateGrouper:
    """Groups candidate files into sets of duplicates.

    Checks are ordered cheapest first: size range, file identity (to skip
    files already hardlinked together), size bucket, and only then a full
    content digest.  A file whose size is unique is never read.  All state
    belongs to the instance, so use a new grouper for each run.
    """

    def __init__(self, options=None, filesystem=None):
        if options is None:
            options = _parse_command_line(get_default_options=True)
        self.options = options
        self.filesystem = filesystem or FileSystem()
        self.stats = DedupeStats(options)

        self._seen_identities = set()
        # size_buckets <- {st_size: _SizeBucket}
        self._size_buckets = _defaultdict(_SizeBucket)
        # file_info <- {pathname: stat_info}, for files that got bucketed
        self._file_info = {}

    def scan(self, pathnames, progress=None):
        """Add every pathname, and return the resulting duplicate sets.

        progress, if given, is called as progress(count, total) after each
        pathname.
        """
        # A single string would otherwise be walked one character at a time
        if isinstance(pathnames, (str, bytes)):
            pathnames = [pathnames]
        pathnames = list(pathnames)
        total = len(pathnames)
        for count, pathname in enumerate(pathnames, 1):
            self.add_file(pathname)
            if progress is not None:
                progress(count, total)

        duplicate_sets = self.duplicate_sets()
        self.stats.found_duplicate_sets(duplicate_sets)
        return duplicate_sets

    def add_file(self, pathname):
        options = self.options
        self.stats.scanned_file(pathname)

        if pathname in self._file_info:
            _logging.debug("Already seen  : %s" % pathname)
            return

        try:
            stat_info = self.filesystem.lstat(pathname)
        except OSError as error:
            _logging.warning("Unable to get stat info for: %s\n%s" % (pathname, error))
            self.stats.unreadable_file(pathname)
            return

        if not _stat.S_ISREG(stat_info.st_mode):
            self.stats.non_regular_file(pathname)
            return

        size = stat_info.st_size
        if ((options.max_file_size is not None and size > options.max_file_size) or
            size < options.min_file_size):
            self.stats.file_outside_size_range(pathname, size)
            return

        identity = self.filesystem.identity(pathname)
        if identity is None:
            self.stats.identity_unavailable(pathname)
        elif identity in self._seen_identities:
            self.stats.found_existing_hardlink(pathname, size)
            return
        else:
            self._seen_identities.add(identity)

        self._file_info[pathname] = stat_info
        bucket = self._size_buckets[size]
        if bucket.state == _SizeBucket.EMPTY:
            bucket.make_pending(pathname)
            return
        if bucket.state == _SizeBucket.PENDING:
            self._add_to_bucket(bucket, bucket.activate())
        self._add_to_bucket(bucket, pathname)

    def _add_to_bucket(self, bucket, pathname):
        try:
            digest = content_digest(pathname, self.options.digest)
        except OSError as error:
            _logging.warning("Couldn't read %s, ignored file.\n%s" % (pathname, error))
            self.stats.unreadable_file(pathname)
            return
        self.stats.computed_digest(pathname, digest)
        bucket.add(digest, pathname)

    def duplicate_sets(self):
        """Return a list of DuplicateSet for every digest with 2+ files"""
        duplicate_sets = []
        for size, bucket in self._size_buckets.items():
            if bucket.state != _SizeBucket.ACTIVE:
                continue
            for digest, pathnames in bucket.digests.items():
                if len(pathnames) > 1:
                    stat_infos = dict((pathname, self._file_info[pathname]) for pathname in pathnames)
                    duplicate_sets.append(DuplicateSet(size, digest, self._policy_ordered(pathnames), stat_infos))
        return duplicate_sets

    def _policy_ordered(self, pathnames):
        """Move the pathname chosen as original to the front"""
        policy = self.options.original
        if policy == "shortest-path":
            key = len
        elif policy == "oldest":
            key = lambda pathname: self._file_info[pathname].st_mtime
        else:
            return list(pathnames)
        # min() keeps the earliest of equal keys, so ties stay first-seen
        original = min(pathnames, key=key)
        return [original] + [pathname for pathname in pathnames if pathname != original]


class Consolidator:
    """Replaces duplicates with hardlinks to the original of their set.

    Each duplicate is first renamed to a backup name, then linked, and only
    then is the backup removed.  If the link fails the backup is renamed
    back, so the duplicate's path never ends up without content.
    """

    def __init__(self, options=None, filesystem=None, stats=None):
        if options is None:
            options = _parse_command_line(get_default_options=True)
        self.options = options
        self.filesystem = filesystem or FileSystem()
        if stats is None:
            stats = DedupeStats(options)
        self.stats = stats

    def consolidate(self, duplicate_sets):
        """Link every duplicate in every set.  Return the stats."""
        for duplicate_set in duplicate_sets:
            self.consolidate_set(duplicate_set)
        return self.stats

    def consolidate_set(self, duplicate_set):
        original = duplicate_set.original
        return [self.link_duplicate(original, dupe, duplicate_set.size, duplicate_set.stat_infos)
                for dupe in duplicate_set.duplicates]

    def link_duplicate(self, original, dupe, size, stat_infos=None):
        """Make dupe a hardlink of original.  Return a LinkOutcome.

        stat_infos holds the scan-time stat results; a file whose size, mtime,
        mode, ownership or inode differs from them is left alone.
        """
        if stat_infos is None:
            stat_infos = {}
        fs = self.filesystem

        original_identity = fs.identity(original)
        if original_identity is not None and original_identity == fs.identity(dupe):
            return self._outcome(ALREADY_LINKED, original, dupe)

        for pathname in (original, dupe):
            if file_has_been_modified(fs, pathname, size, stat_infos.get(pathname)):
                _logging.warning("File changed since it was scanned, not linking: %s" % pathname)
                return self._outcome(MODIFIED, original, dupe, pathname)

        if not fs.can_hardlink(original, dupe):
            _logging.error("Hardlinks not supported from %s to %s" % (original, dupe))
            return self._outcome(UNSUPPORTED, original, dupe)

        backup = dupe + BACKUP_SUFFIX
        if fs.exists(backup):
            _logging.error("Backup filename already exists, not linking: %s" % backup)
            return self._outcome(BACKUP_EXISTS, original, dupe, backup)

        try:
            fs.rename(dupe, backup)
        except OSError as error:
            _logging.error("Failed to rename: %s to %s\n%s" % (dupe, backup, error))
            return self._outcome(RENAME_FAILED, original, dupe, str(error))

        try:
            fs.link(original, dupe)
        except OSError as error:
            _logging.error("Couldn't hardlink %s to %s; restoring backup\n%s" % (original, dupe, error))
            try:
                fs.rename(backup, dupe)
            except OSError as restore_error:
                _logging.critical("Failed to rename backup %s back to %s, the content is now only there\n%s" %
                                  (backup, dupe, restore_error))
                return self._outcome(STRANDED, original, dupe, backup)
            return self._outcome(RESTORED, original, dupe, str(error))

        try:
            fs.unlink(backup)
        except OSError as error:
            # The link is in place, so nothing is lost; the backup is just
            # a redundant entry now.
            _logging.error("Failed to remove backup filename: %s\n%s" % (backup, error))
            return self._outcome(BACKUP_LEFT, original, dupe, backup, size)
        return self._outcome(LINKED, original, dupe, None, size)

    def _outcome(self, kind, original, dupe, detail=None, bytes_saved=0):
        outcome = LinkOutcome(kind, original, dupe, detail)
        self.stats.link_outcome(outcome, bytes_saved)
        return outcome


class DedupeStats:
    def __init__(self, options):
        self.options = options
        self.reset()

    def reset(self):
        self.files_scanned = 0              # every pathname handed to the grouper
        self.num_non_regular_files = 0      # symlinks, devices, etc.
        self.num_files_too_large = 0        # how many files are too large
        self.num_files_too_small = 0        # how many files are too small
        self.num_unreadable_files = 0       # stat or read failures (files dropped)
        self.num_identity_unavailable = 0   # files with no usable identity
        self.num_digests_computed = 0       # content digests computed
        self.hardlinked_previously = 0      # paths to an already seen identity
        self.bytes_saved_previously = 0     # bytes saved by those existing links
        self.num_duplicate_sets = 0         # sets with at least 2 files
        self.files_in_duplicate_sets = 0    # all files in those sets
        self.reclaimable_bytes = 0          # sum of (count - 1) * size per set
        self.bytes_saved_thisrun = 0        # bytes saved by links made this run
        self.outcomes = []                  # LinkOutcome for each duplicate
        self.outcome_counts = {}            # {kind: count}
        self.starttime = _time.time()       # track how long it takes

    @property
    def unique_files(self):
        return self.files_scanned - self.files_in_duplicate_sets

    @property
    def stranded(self):
        """Outcomes whose duplicate content only exists under the backup name"""
        return [outcome for outcome in self.outcomes if outcome.kind == STRANDED]

    def reclaimable_units(self):
        number = self.reclaimable_bytes
        return {'bytes': number,
                'KiB': number // 1024,
                'MiB': number // 1024 ** 2,
                'GiB': number // 1024 ** 3,
                'TiB': number // 1024 ** 4}

    def scanned_file(self, pathname):
        self.files_scanned += 1
        if self.options.debug_level > 4:
            _logging.debug("File          : %s" % pathname)

    def non_regular_file(self, pathname):
        self.num_non_regular_files += 1
        if self.options.debug_level > 5:
            _logging.debug("Not regular   : %s" % pathname)

    def file_outside_size_range(self, pathname, filesize):
        if (self.options.max_file_size is not None and
            filesize > self.options.max_file_size):
            self.num_files_too_large += 1
            if self.options.debug_level > 5:
                _logging.debug("File too large: %s" % pathname)
        if filesize < self.options.min_file_size:
            self.num_files_too_small += 1
            if self.options.debug_level > 5:
                _logging.debug("File too small: %s" % pathname)

    def unreadable_file(self, pathname):
        self.num_unreadable_files += 1

    def identity_unavailable(self, pathname):
        self.num_identity_unavailable += 1
        if self.options.debug_level > 3:
            _logging.debug("No identity   : %s" % pathname)

    def found_existing_hardlink(self, pathname, filesize):
        self.hardlinked_previously += 1
        self.bytes_saved_previously += filesize
        if self.options.debug_level > 3:
            _logging.debug("Existing link : %s" % pathname)

    def computed_digest(self, pathname, digest):
        self.num_digests_computed += 1
        if self.options.debug_level > 2:
            _logging.debug("Digest        : %s %s" % (digest, pathname))

    def found_duplicate_sets(self, duplicate_sets):
        self.num_duplicate_sets = len(duplicate_sets)
        self.files_in_duplicate_sets = sum(len(s) for s in duplicate_sets)
        self.reclaimable_bytes = sum(s.reclaimable_bytes() for s in duplicate_sets)

    def link_outcome(self, outcome, bytes_saved=0):
        self.outcomes.append(outcome)
        self.outcome_counts[outcome.kind] = self.outcome_counts.get(outcome.kind, 0) + 1
        self.bytes_saved_thisrun += bytes_saved
        if outcome.kind == LINKED and self.options.verbosity > 1:
            print("Hardlinked %s to %s" % (outcome.original, outcome.duplicate))
        elif self.options.debug_level > 0:
            _logging.debug("%-14s: %s -> %s" % (outcome.kind, outcome.duplicate, outcome.original))

    def print_duplicate_sets(self, duplicate_sets):
        print("Duplicate sets")
        print("--------------")
        for duplicate_set in duplicate_sets:
            print("Original : %s" % duplicate_set.original)
            for dupe in duplicate_set.duplicates:
                print("Duplicate: %s" % dupe)
            print("Size per file: %s  Reclaimable: %s" % (duplicate_set.size,
                                                          _humanize_number(duplicate_set.reclaimable_bytes())))

    def print_stats(self):
        print("Statistics")
        print("----------")
        print("Files scanned              : %s" % self.files_scanned)
        print("Unique files               : %s" % self.unique_files)
        print("Duplicate sets             : %s" % self.num_duplicate_sets)
        print("Files in duplicate sets    : %s" % self.files_in_duplicate_sets)
        print("Pre-existing hardlinks     : %s" % self.hardlinked_previously)
        print("Reclaimable bytes          : %s (%s)" % (self.reclaimable_bytes,
                                                        _humanize_number(self.reclaimable_bytes)))
        print("                           : %(KiB)s KiB or %(MiB)s MiB or %(GiB)s GiB or %(TiB)s TiB" %
              self.reclaimable_units())
        if self.options.verbosity > 0 or self.options.debug_level > 0:
            print("Currently hardlinked bytes : %s (%s)" % (self.bytes_saved_previously,
                                                            _humanize_number(self.bytes_saved_previously)))
            print("Digests computed           : %s" % self.num_digests_computed)
            if self.num_files_too_large:
                print("Total too large files      : %s" % self.num_files_too_large)
            if self.num_files_too_small:
                print("Total too small files      : %s" % self.num_files_too_small)
            if self.num_non_regular_files:
                print("Total non-regular files    : %s" % self.num_non_regular_files)
            if self.num_unreadable_files:
                print("Total unreadable files     : %s" % self.num_unreadable_files)
            if self.num_identity_unavailable:
                print("Total without identity     : %s" % self.num_identity_unavailable)
        if self.options.debug_level > 0:
            print("Total run time             : %s seconds" % round(_time.time() - self.starttime, 3))

    def print_outcomes(self):
        labels = ((LINKED, "Hardlinked this run        : %s"),
                  (ALREADY_LINKED, "Already hardlinked         : %s"),
                  (MODIFIED, "Changed since scan         : %s"),
                  (UNSUPPORTED, "Hardlinks unsupported      : %s"),
                  (BACKUP_EXISTS, "Backup name in use         : %s"),
                  (RENAME_FAILED, "Rename failed              : %s"),
                  (RESTORED, "Link failed, restored      : %s"),
                  (BACKUP_LEFT, "Backups not removed        : %s"),
                  (STRANDED, "STRANDED under backup name : %s"))
        print("Linking")
        print("-------")
        print(labels[0][1] % self.outcome_counts.get(LINKED, 0))
        for kind, label in labels[1:]:
            if self.outcome_counts.get(kind):
                print(label % self.outcome_counts[kind])
        print("Saved bytes this run       : %s (%s)" % (self.bytes_saved_thisrun,
                                                        _humanize_number(self.bytes_saved_thisrun)))


#################
# Module functions
#################

def stream_digest(stream, algorithm=DEFAULT_DIGEST):
    """Return the hex digest of everything left to read in a binary stream"""
    hasher = _hashlib.new(algorithm)
    while True:
        chunk = stream.read(_CHUNK_SIZE)
        if not chunk:
            break
        hasher.update(chunk)
    return hasher.hexdigest()


def content_digest(pathname, algorithm=DEFAULT_DIGEST):
    """Return the hex digest of a file's full content.  Read errors propagate."""
    with open(pathname, "rb") as f:
        return stream_digest(f, algorithm)


def _file_identity(stat_info):
    """Return a FileIdentity from a stat result, or None if the filesystem
    doesn't report a usable file index."""
    if not stat_info.st_ino:
        return None
    return FileIdentity(stat_info.st_dev,
                        stat_info.st_ino >> 32,
                        stat_info.st_ino & 0xFFFFFFFF)


def file_has_been_modified(filesystem, pathname, size, stat_info=None):
    """Return True if pathname is gone, or is known to have been modified
    since stat_info was taken."""
    try:
        current_stat = filesystem.lstat(pathname)
    except OSError as error:
        _logging.error("Failed to stat: %s\n%s" % (pathname, error))
        return True

    if current_stat.st_size != size or not _stat.S_ISREG(current_stat.st_mode):
        return True
    if stat_info is None:
        return False

    # Check inode stats to see an indication that the file (or possibly the
    # inode) was updated.
    return (current_stat.st_mtime_ns != stat_info.st_mtime_ns or
            current_stat.st_mode != stat_info.st_mode or
            current_stat.st_uid != stat_info.st_uid or
            current_stat.st_gid != stat_info.st_gid or
            current_stat.st_ino != stat_info.st_ino or
            current_stat.st_dev != stat_info.st_dev)


def matched_pathnames(directories, options):
    """Yield absolute pathnames of files in the directory trees that pass the
    match and exclude patterns"""
    if isinstance(directories, (str, bytes)):
        directories = [directories]

    for top_dir in directories:
        # Use topdown=True for directory search pruning. followlinks is False
        for dirpath, dirs, filenames in _os.walk(top_dir, topdown=True):
            _cull_excluded_directories(dirs, options.excludes)
            for filename in filenames:
                if _found_excluded_glob(filename, options.excludes):
                    continue
                if not _found_matched_filename_glob(filename, options.matches):
                    continue
                pathname = _os.path.abspath(_os.path.join(dirpath, filename))
                if pathname.endswith(BACKUP_SUFFIX):
                    _logging.warning("Skipping leftover backup file: %s" % pathname)
                    continue
                yield pathname


def _cull_excluded_directories(dirs, excludes):
    """Remove any excluded directories from dirs.

    Note that it modifies dirs in place, as required by os.walk()
    """
    dirs[:] = [dirname for dirname in dirs
               if not _found_excluded_glob(dirname, excludes)]


def _found_excluded_glob(name, excludes):
    """If excludes option is given, return True if name matches any pattern."""
    for exclude in excludes:
        if _fnmatch.fnmatch(name, exclude):
            return True
    return False


def _found_matched_filename_glob(name, matches):
    """If matches option is given, return False if name doesn't match any
    patterns.  If no matches are given, return True."""
    if not matches:
        return True
    for match in matches:
        if _fnmatch.fnmatch(name, match):
            return True
    return False


def _humanize_number(number):
    if number >= 1024 ** 5:
        return ("%.3f PiB" % (number / (1024.0 ** 5)))
    if number >= 1024 ** 4:
        return ("%.3f TiB" % (number / (1024.0 ** 4)))
    if number >= 1024 ** 3:
        return ("%.3f GiB" % (number / (1024.0 ** 3)))
    if number >= 1024 ** 2:
        return ("%.3f MiB" % (number / (1024.0 ** 2)))
    if number >= 1024:
        return ("%.3f KiB" % (number / 1024.0))
    return ("%d bytes" % number)


def _humanized_number_to_bytes(s):
    """Parses numbers with size specifiers like 'k', 'm', 'g', or 't'.
    Deliberately ignores multi-letter abbrevs like 'kb' or 'kib'"""
    if not s:
        int(s)  # Deliberately raise ValueError on empty input

    s = s.lower()
    multipliers = {'k': 1024,
                   'm': 1024**2,
                   'g': 1024**3,
                   't': 1024**4,
                   'p': 1024**5}

    last_char = s[-1]
    if last_char not in multipliers:
        return int(s)
    else:
        s = s[:-1]
        multiplier = multipliers[last_char]
        return multiplier * int(s)


def _progress_printer(stream=None):
    """Return a progress(count, total) callable that writes a percentage"""
    if stream is None:
        stream = _sys.stderr

    def progress(count, total):
        if count % _PROGRESS_INTERVAL == 0 or count == total:
            stream.write("%d%% (%d/%d)\r" % (100 * count // total, count, total))
            if count == total:
                stream.write("\n")
            stream.flush()
    return progress


def _confirm_linking(options):
    if options.linking_enabled:
        return True
    if options.dry_run:
        return False
    print("Press 'y' to continue and create the hard links")
    try:
        answer = input()
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def main():
    # Remove user from logging output
    _logging.basicConfig(format='%(levelname)s:%(message)s')

    # Parse our argument list and get our list of directories
    options, directories = _parse_command_line()

    if options.printstats:
        patterns = ", ".join(options.matches) or "*"
        print("Scanning %s for '%s'" % (", ".join(directories), patterns))
    pathnames = list(matched_pathnames(directories, options))

    progress = None
    if options.printstats and _sys.stderr.isatty():
        progress = _progress_printer()

    grouper = DuplicateGrouper(options)
    duplicate_sets = grouper.scan(pathnames, progress)
    stats = grouper.stats

    if options.verbosity > 0:
        stats.print_duplicate_sets(duplicate_sets)
    if options.printstats:
        stats.print_stats()

    if duplicate_sets and _confirm_linking(options):
        consolidator = Consolidator(options, grouper.filesystem, stats)
        consolidator.consolidate(duplicate_sets)
        if options.printstats:
            stats.print_outcomes()

    if stats.stranded:
        for outcome in stats.stranded:
            _logging.critical("Content of %s was left at %s" % (outcome.duplicate, outcome.detail))
        return 3
    return 0


if __name__ == '__main__':
    _sys.exit(main())
