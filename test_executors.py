#!/usr/bin/env python3
# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Test script for the mutating workflows.

This script validates:
- Canonical origin updates (skips, plans, prompts, idempotent re-runs)
- Protocol conversion filtered on the live origin URL
- Directory renames: plans, validations, case-only moves and rollback
- Rename batches: deepest-first ordering, clean-check relaxation for
  ancestors and run-wide "apply to all"
"""

import io
import os
import stat
import sys
from pathlib import Path

# Add the project root to Python path to import our module
sys.path.insert(0, str(Path(__file__).parent))

try:
    from reconcile_repos import (
        CascadingConfirmationPrompter,
        CommandExecutionError,
        ConfirmationResult,
        ExecutionContext,
        Outcome,
        OutcomeReporter,
        ProtocolConvertExecutor,
        ProtocolConvertOptions,
        RemoteProtocol,
        RemoteUpdateExecutor,
        RemoteUpdateOptions,
        RenameExecutor,
        RenameOptions,
        RepositoryRecord,
        TernaryValue,
        calculate_path_depth,
        is_ancestor_path,
        prepare_rename_requests,
        run_protocol_conversions,
        run_remote_updates,
        run_rename_batch,
    )
except ImportError as e:
    print(f"ERROR: Failed to import from reconcile_repos.py: {e}")
    sys.exit(1)


# =============================================================================
# FAKES
# =============================================================================


class ScriptedPrompter:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts = []

    def confirm(self, prompt):
        self.prompts.append(prompt)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeGitManager:
    def __init__(self, urls=None, dirty=(), clean_sequences=None, fail_set_url=()):
        self.urls = dict(urls or {})
        self.dirty = set(dirty)
        self.clean_sequences = {k: list(v) for k, v in (clean_sequences or {}).items()}
        self.fail_set_url = set(fail_set_url)
        self.set_calls = []
        self.clean_checks = []

    def check_clean_worktree(self, context, path):
        self.clean_checks.append(path)
        if path in self.clean_sequences and self.clean_sequences[path]:
            return self.clean_sequences[path].pop(0)
        return path not in self.dirty

    def get_remote_url(self, context, path, remote="origin"):
        if path not in self.urls:
            raise CommandExecutionError(["git", "remote", "get-url", remote], path, 2, "No such remote")
        return self.urls[path]

    def set_remote_url(self, context, path, remote, url):
        if path in self.fail_set_url:
            raise CommandExecutionError(["git", "remote", "set-url", remote, url], path, 128, "locked")
        self.set_calls.append((path, url))
        self.urls[path] = url


class FakeFileSystem:
    """In-memory tree of directories and files keyed by normalized path."""

    def __init__(self, directories=(), files=(), case_insensitive=False, fail_renames=()):
        self.case_insensitive = case_insensitive
        self.entries = {}
        for directory in directories:
            self.entries[self._key(directory)] = "dir"
        for file_path in files:
            self.entries[self._key(file_path)] = "file"
        self.fail_renames = set(fail_renames)
        self.renames = []
        self.created = []

    def _key(self, path):
        normalized = os.path.normpath(path)
        return normalized.lower() if self.case_insensitive else normalized

    def exists(self, path):
        return self._key(path) in self.entries

    def stat(self, path):
        kind = self.entries.get(self._key(path))
        if kind is None:
            raise FileNotFoundError(path)
        mode = stat.S_IFDIR | 0o755 if kind == "dir" else stat.S_IFREG | 0o644
        return os.stat_result((mode, 0, 0, 0, 0, 0, 0, 0, 0, 0))

    def rename(self, old_path, new_path):
        self.renames.append((old_path, new_path))
        if (old_path, new_path) in self.fail_renames:
            raise OSError("rename refused")
        old_key, new_key = self._key(old_path), self._key(new_path)
        if old_key not in self.entries:
            raise FileNotFoundError(old_path)
        moved = {}
        for key in list(self.entries):
            if key == old_key or key.startswith(old_key + os.sep):
                moved[new_key + key[len(old_key):]] = self.entries.pop(key)
        self.entries.update(moved)

    def absolute(self, path):
        return os.path.normpath(path)

    def mkdir_all(self, path, mode=0o755):
        self.created.append((path, mode))
        current = os.path.normpath(path)
        while current not in ("", os.sep) and not self.exists(current):
            self.entries[self._key(current)] = "dir"
            current = os.path.dirname(current)


def make_reporter():
    output, errors = io.StringIO(), io.StringIO()
    return OutcomeReporter(output=output, errors=errors), output, errors


def make_record(path, origin_url, origin, canonical, protocol=RemoteProtocol.GIT, desired=None):
    final = canonical or origin
    return RepositoryRecord(
        path=path,
        folder_name=os.path.basename(path),
        origin_url=origin_url,
        origin_owner_repository=origin,
        canonical_owner_repository=canonical,
        final_owner_repository=final,
        desired_folder_name=desired if desired is not None else final.split("/")[-1],
        remote_protocol=protocol,
        origin_matches_canonical=TernaryValue.NOT_APPLICABLE,
    )


# =============================================================================
# REMOTE UPDATE
# =============================================================================


def test_remote_update_then_rerun_is_noop():
    """A renamed repository is repointed once; the next run skips it."""
    print("Testing canonical remote update and idempotent re-run...")

    path = "/src/old"
    git = FakeGitManager(urls={path: "git@github.com:octo/old.git"})
    reporter, output, errors = make_reporter()
    executor = RemoteUpdateExecutor(git, CascadingConfirmationPrompter(None, assume_yes=True), reporter)

    record = make_record(path, "git@github.com:octo/old.git", "octo/old", "octo/new")
    run_remote_updates(ExecutionContext(), executor, [record], dry_run=False)
    assert git.set_calls == [(path, "git@github.com:octo/new.git")]
    assert output.getvalue() == "UPDATE-REMOTE-DONE: /src/old origin now git@github.com:octo/new.git\n"
    assert errors.getvalue() == ""

    rerun = make_record(path, git.urls[path], "octo/new", "octo/new")
    run_remote_updates(ExecutionContext(), executor, [rerun], dry_run=False)
    assert len(git.set_calls) == 1, "Second run must not mutate"
    assert output.getvalue().endswith("UPDATE-REMOTE-SKIP: /src/old (already canonical)\n")
    assert reporter.counts[Outcome.SUCCESS] == 1
    assert reporter.counts[Outcome.SKIP] == 1

    print("  ✅ Remote update is applied once")


def test_remote_update_skips_and_plan():
    """Every skip reason and the dry-run plan line."""
    print("Testing remote update skips and dry-run plan...")

    git = FakeGitManager()
    reporter, output, _ = make_reporter()
    executor = RemoteUpdateExecutor(git, CascadingConfirmationPrompter(None, assume_yes=True), reporter)
    context = ExecutionContext()
    url = "git@github.com:octo/old.git"

    executor.execute(context, RemoteUpdateOptions("/a", url, "", "octo/new", RemoteProtocol.GIT))
    executor.execute(context, RemoteUpdateOptions("/b", url, "octo/old", "", RemoteProtocol.GIT))
    executor.execute(context, RemoteUpdateOptions("/c", url, "Octo/Old", "octo/old", RemoteProtocol.GIT))
    executor.execute(context, RemoteUpdateOptions(
        "/d", url, "octo/old", "other/new", RemoteProtocol.GIT, owner_constraint="octo"))
    executor.execute(context, RemoteUpdateOptions(
        "/e", "file:///srv/old.git", "octo/old", "octo/new", RemoteProtocol.OTHER))
    executor.execute(context, RemoteUpdateOptions(
        "/f", url, "octo/old", "OCTO/new", RemoteProtocol.GIT, dry_run=True, owner_constraint="octo"))

    assert output.getvalue().splitlines() == [
        "UPDATE-REMOTE-SKIP: /a (error: could not parse origin owner/repo)",
        "UPDATE-REMOTE-SKIP: /b (no upstream: no canonical redirect found)",
        "UPDATE-REMOTE-SKIP: /c (already canonical)",
        "UPDATE-REMOTE-SKIP: /d (owner constraint unmet: expected octo, found other)",
        "UPDATE-REMOTE-SKIP: /e (error: could not construct target URL)",
        "PLAN-UPDATE-REMOTE: /f origin git@github.com:octo/old.git → git@github.com:OCTO/new.git",
    ]
    assert git.set_calls == []

    print("  ✅ Remote update skips and plan reported correctly")


def test_https_mismatch_plan_and_ssh_filter():
    """Dry-run plan for an https mismatch; https→ssh ignores ssh origins."""
    print("Testing https canonical mismatch plan and ssh origin filter...")

    path = "/src/example"
    origin_url = "https://github.com/origin/example.git"
    git = FakeGitManager(urls={path: "ssh://git@github.com/origin/example.git"})
    reporter, output, errors = make_reporter()
    context = ExecutionContext()

    record = make_record(path, origin_url, "origin/example", "canonical/example", protocol=RemoteProtocol.HTTPS)
    RemoteUpdateExecutor(git, CascadingConfirmationPrompter(None), reporter).execute(
        context, RemoteUpdateOptions.from_record(record, dry_run=True)
    )
    assert output.getvalue() == (
        "PLAN-UPDATE-REMOTE: /src/example origin https://github.com/origin/example.git"
        " → https://github.com/canonical/example.git\n"
    )

    ProtocolConvertExecutor(git, CascadingConfirmationPrompter(None), reporter).execute(
        context, ProtocolConvertOptions.from_record(record, RemoteProtocol.HTTPS, RemoteProtocol.SSH)
    )
    assert output.getvalue().count("\n") == 1, "Filtered repositories produce no output"
    assert errors.getvalue() == ""
    assert git.set_calls == []

    print("  ✅ Plan line and protocol filter behave correctly")


def test_remote_update_prompts():
    """Declines skip; apply-to-all stops further prompts; set failures are errors."""
    print("Testing remote update prompting...")

    paths = ["/src/a", "/src/b", "/src/c", "/src/d"]
    git = FakeGitManager(fail_set_url={"/src/d"})
    base = ScriptedPrompter(ConfirmationResult(), ConfirmationResult(True, True))
    reporter, output, errors = make_reporter()
    executor = RemoteUpdateExecutor(git, CascadingConfirmationPrompter(base), reporter)

    records = [
        make_record(path, f"https://github.com/octo/{name}-old.git", f"octo/{name}-old", f"octo/{name}",
                    protocol=RemoteProtocol.HTTPS)
        for path, name in zip(paths, ["a", "b", "c", "d"])
    ]
    run_remote_updates(ExecutionContext(), executor, records, dry_run=False)

    assert base.prompts == [
        "Update 'origin' in '/src/a' to canonical (octo/a-old → octo/a)? [a/N/y] ",
        "Update 'origin' in '/src/b' to canonical (octo/b-old → octo/b)? [a/N/y] ",
    ]
    assert git.set_calls == [
        ("/src/b", "https://github.com/octo/b.git"),
        ("/src/c", "https://github.com/octo/c.git"),
    ]
    assert "UPDATE-REMOTE-SKIP: user declined for /src/a" in output.getvalue()
    assert errors.getvalue() == "UPDATE-REMOTE-SKIP: /src/d (error: failed to set origin URL)\n"
    assert reporter.counts[Outcome.FAILURE] == 1

    print("  ✅ Remote update prompting works correctly")


# =============================================================================
# PROTOCOL CONVERSION
# =============================================================================


def test_protocol_convert_filters_on_live_url():
    """Repositories whose live origin is not on the source protocol are untouched."""
    print("Testing protocol conversion filter...")

    git = FakeGitManager(urls={
        "/src/widget": "https://github.com/octo/widget.git",
        "/src/gadget": "git@github.com:octo/gadget.git",
    })
    reporter, output, errors = make_reporter()
    executor = ProtocolConvertExecutor(git, CascadingConfirmationPrompter(None, True), reporter)

    # Record says git but the live URL is already https
    stale = make_record("/src/widget", "git@github.com:octo/widget.git", "octo/widget", "")
    current = make_record("/src/gadget", "git@github.com:octo/gadget.git", "octo/gadget", "")
    run_protocol_conversions(
        ExecutionContext(), executor, [stale, current], RemoteProtocol.GIT, RemoteProtocol.HTTPS, dry_run=False
    )

    assert git.set_calls == [("/src/gadget", "https://github.com/octo/gadget.git")]
    assert output.getvalue() == "CONVERT-DONE: /src/gadget origin now https://github.com/octo/gadget.git\n"
    assert errors.getvalue() == ""

    print("  ✅ Conversion filtered on live origin")


def test_protocol_convert_round_trip():
    """git → https → git restores the original URL; canonical identity wins."""
    print("Testing protocol conversion round trip...")

    path = "/src/widget"
    original = "git@github.com:octo/widget.git"
    git = FakeGitManager(urls={path: original})
    reporter, output, _ = make_reporter()
    executor = ProtocolConvertExecutor(git, CascadingConfirmationPrompter(None, True), reporter)
    context = ExecutionContext()

    record = make_record(path, original, "octo/widget", "octo/widget")
    executor.execute(context, ProtocolConvertOptions.from_record(record, RemoteProtocol.GIT, RemoteProtocol.HTTPS))
    executor.execute(context, ProtocolConvertOptions.from_record(record, RemoteProtocol.HTTPS, RemoteProtocol.GIT))
    assert git.urls[path] == original

    renamed = make_record(path, original, "octo/widget", "octo/gizmo")
    executor.execute(
        context, ProtocolConvertOptions.from_record(renamed, RemoteProtocol.GIT, RemoteProtocol.SSH, dry_run=True)
    )
    assert output.getvalue().splitlines()[-1] == (
        "PLAN-CONVERT: /src/widget origin git@github.com:octo/widget.git → ssh://git@github.com/octo/gizmo.git"
    )
    assert git.urls[path] == original

    print("  ✅ Round trip restores the original URL")


def test_protocol_convert_errors_and_decline():
    """Identity and read errors go to the error stream; declines are skips."""
    print("Testing protocol conversion errors and declines...")

    git = FakeGitManager(urls={
        "/src/anonymous": "git@github.com:octo/anonymous.git",
        "/src/widget": "git@github.com:octo/widget.git",
    })
    base = ScriptedPrompter(ConfirmationResult())
    reporter, output, errors = make_reporter()
    executor = ProtocolConvertExecutor(git, CascadingConfirmationPrompter(base), reporter)
    context = ExecutionContext()

    executor.execute(context, ProtocolConvertOptions("/src/anonymous", "", "", RemoteProtocol.GIT, RemoteProtocol.SSH))
    executor.execute(context, ProtocolConvertOptions("/src/missing", "octo/x", "", RemoteProtocol.GIT, RemoteProtocol.SSH))
    executor.execute(context, ProtocolConvertOptions("/src/widget", "octo/widget", "", RemoteProtocol.GIT, RemoteProtocol.SSH))

    assert errors.getvalue().splitlines() == [
        "ERROR: cannot derive owner/repo for protocol conversion in /src/anonymous",
        "ERROR: cannot read origin URL in /src/missing",
    ]
    assert base.prompts == ["Convert 'origin' in '/src/widget' (git → ssh)? [a/N/y] "]
    assert output.getvalue() == "CONVERT-SKIP: user declined for /src/widget\n"
    assert git.set_calls == []

    print("  ✅ Conversion errors and declines reported correctly")


# =============================================================================
# RENAME
# =============================================================================


def build_rename_executor(file_system, git=None, prompter=None, clock=lambda: 42):
    reporter, output, errors = make_reporter()
    executor = RenameExecutor(
        file_system,
        git or FakeGitManager(),
        prompter or CascadingConfirmationPrompter(None, assume_yes=True),
        reporter,
        clock=clock,
    )
    return executor, reporter, output, errors


def test_rename_dry_run_plans():
    """Dry-run reports every plan outcome without touching the filesystem."""
    print("Testing rename dry-run plans...")

    fs = FakeFileSystem(
        directories=["/src", "/src/old", "/src/taken", "/src/dirty", "/src/Widget", "/src/flat"],
        files=["/src/blocker"],
    )
    git = FakeGitManager(dirty={"/src/dirty"})
    executor, _, output, _ = build_rename_executor(fs, git)
    context = ExecutionContext()

    executor.execute(context, RenameOptions("/src/old", "new", dry_run=True))
    executor.execute(context, RenameOptions("/src/old", "old", dry_run=True))
    executor.execute(context, RenameOptions("/src/old", "taken", dry_run=True))
    executor.execute(context, RenameOptions("/src/dirty", "clean", dry_run=True, require_clean_worktree=True))
    executor.execute(context, RenameOptions("/src/flat", "octo/flat", dry_run=True))
    executor.execute(context, RenameOptions("/src/flat", "blocker/flat", dry_run=True, ensure_parent_directories=True))
    executor.execute(context, RenameOptions("/src/Widget", "widget", dry_run=True))
    executor.execute(context, RenameOptions("/src/old", "   ", dry_run=True))

    assert output.getvalue().splitlines() == [
        "PLAN-OK: /src/old → /src/new",
        "PLAN-SKIP (already named): /src/old",
        "PLAN-SKIP (target exists): /src/taken",
        "PLAN-SKIP (dirty worktree): /src/dirty",
        "PLAN-SKIP (target parent missing): /src/octo",
        "PLAN-SKIP (target parent not directory): /src/blocker",
        "PLAN-CASE-ONLY: /src/Widget → /src/widget (two-step move required)",
    ]
    assert fs.renames == []

    print("  ✅ Dry-run plans reported correctly")


def test_rename_validations_and_success():
    """Validation failures block the rename; a valid rename succeeds."""
    print("Testing rename validations and success...")

    fs = FakeFileSystem(
        directories=["/src", "/src/old", "/src/taken", "/src/dirty", "/src/flat"],
        files=["/src/blocker"],
    )
    git = FakeGitManager(dirty={"/src/dirty"})
    executor, reporter, output, errors = build_rename_executor(fs, git)
    context = ExecutionContext()

    executor.execute(context, RenameOptions("/src/old", "old"))
    executor.execute(context, RenameOptions("/src/dirty", "clean", require_clean_worktree=True))
    executor.execute(context, RenameOptions("/src/old", "taken"))
    executor.execute(context, RenameOptions("/src/flat", "octo/flat"))
    executor.execute(context, RenameOptions("/src/flat", "blocker/flat", ensure_parent_directories=True))
    assert fs.renames == []

    executor.execute(context, RenameOptions("/src/old", "new"))
    assert fs.renames == [("/src/old", "/src/new")]
    assert fs.exists("/src/new") and not fs.exists("/src/old")

    assert output.getvalue().splitlines() == [
        "SKIP (already named): /src/old",
        "SKIP (dirty worktree): /src/dirty",
        "Renamed /src/old → /src/new",
    ]
    assert errors.getvalue().splitlines() == [
        "ERROR: target exists: /src/taken",
        "ERROR: target parent missing: /src/octo",
        "ERROR: target parent is not a directory: /src/blocker",
    ]
    assert reporter.counts[Outcome.SUCCESS] == 1
    assert reporter.counts[Outcome.FAILURE] == 1

    print("  ✅ Rename validations work correctly")


def test_rename_creates_owner_parent():
    """Nested plans create the owner directory when allowed."""
    print("Testing nested rename with parent creation...")

    fs = FakeFileSystem(directories=["/src", "/src/widget"])
    executor, _, output, _ = build_rename_executor(fs)

    executor.execute(
        ExecutionContext(),
        RenameOptions("/src/widget", "octo/widget", include_owner=True, ensure_parent_directories=True),
    )
    assert fs.created == [("/src/octo", 0o755)]
    assert fs.renames == [("/src/widget", "/src/octo/widget")]
    assert output.getvalue() == "Renamed /src/widget → /src/octo/widget\n"

    print("  ✅ Owner directory created and repository moved")


def test_case_only_rename_and_rollback():
    """Case-only renames go through an intermediate and roll back on failure."""
    print("Testing case-only rename and rollback...")

    fs = FakeFileSystem(directories=["/src", "/src/Widget"], case_insensitive=True)
    executor, _, output, _ = build_rename_executor(fs)
    executor.execute(ExecutionContext(), RenameOptions("/src/Widget", "widget"))
    assert fs.renames == [
        ("/src/Widget", "/src/Widget.rename.42"),
        ("/src/Widget.rename.42", "/src/widget"),
    ]
    assert output.getvalue() == "Renamed /src/Widget → /src/widget\n"

    failing = FakeFileSystem(
        directories=["/src", "/src/Gadget"],
        case_insensitive=True,
        fail_renames={("/src/Gadget.rename.7", "/src/gadget")},
    )
    executor, reporter, _, errors = build_rename_executor(failing, clock=lambda: 7)
    executor.execute(ExecutionContext(), RenameOptions("/src/Gadget", "gadget"))
    assert failing.renames[-1] == ("/src/Gadget.rename.7", "/src/Gadget"), "Intermediate must be rolled back"
    assert failing.exists("/src/Gadget")
    assert not failing.exists("/src/Gadget.rename.7")
    assert errors.getvalue() == "ERROR: rename failed for /src/Gadget → /src/gadget\n"
    assert reporter.counts[Outcome.FAILURE] == 1

    print("  ✅ Case-only rename and rollback work correctly")


def test_rename_prompt_decline():
    """A declined prompt leaves the repository in place."""
    print("Testing rename prompt decline...")

    fs = FakeFileSystem(directories=["/src", "/src/old"])
    base = ScriptedPrompter(ConfirmationResult())
    executor, _, output, _ = build_rename_executor(fs, prompter=CascadingConfirmationPrompter(base))
    executor.execute(ExecutionContext(), RenameOptions("/src/old", "new"))

    assert base.prompts == ["Rename '/src/old' → '/src/new'? [a/N/y] "]
    assert output.getvalue() == "SKIP: /src/old\n"
    assert fs.renames == []

    print("  ✅ Declined rename skipped")


# =============================================================================
# RENAME BATCH
# =============================================================================


def test_ancestor_path_detection():
    """Children whose names start with dots are still descendants."""
    print("Testing ancestor path detection...")

    assert is_ancestor_path("/src/a", "/src/a/nested/repo")
    assert is_ancestor_path("/src/a", "/src/a/..cache/repo")
    assert is_ancestor_path("/src/a", "/src/a/...")
    assert not is_ancestor_path("/src/a", "/src/a")
    assert not is_ancestor_path("/src/a", "/src/b")
    assert not is_ancestor_path("/src/a/nested", "/src/a")
    assert not is_ancestor_path("/src/a", "/src/ab/repo")

    print("  ✅ Ancestor paths detected correctly")


def test_prepare_rename_requests_ordering():
    """Deepest paths first, then by path; satisfied plans keep their name."""
    print("Testing rename request ordering...")

    records = [
        make_record("/src/b-old", "", "octo/b", ""),
        make_record("/src/a-old", "", "octo/a", ""),
        make_record("/src/a-old/nested/c-old", "", "octo/c", ""),
        make_record("/src/done", "", "octo/done", ""),
        make_record("/src/blank", "", "", "", desired=""),
    ]
    requests = prepare_rename_requests(records, include_owner=False, dry_run=True, require_clean=False)

    assert [r.options.repository_path for r in requests] == [
        "/src/a-old/nested/c-old", "/src/a-old", "/src/b-old", "/src/done",
    ]
    assert [r.options.desired_folder_name for r in requests] == ["c", "a", "b", "done"]
    assert calculate_path_depth("/src/a-old/nested/c-old") == 4

    nested = prepare_rename_requests(
        [make_record("/src/widget", "", "octo/widget", "")], include_owner=True, dry_run=False, require_clean=False
    )
    assert nested[0].options.desired_folder_name == os.path.join("octo", "widget")
    assert nested[0].options.ensure_parent_directories

    print("  ✅ Rename requests ordered correctly")


def test_rename_batch_relaxes_clean_ancestors():
    """An ancestor clean before the batch is renamed after its child moves."""
    print("Testing clean-check relaxation for ancestor repositories...")

    fs = FakeFileSystem(directories=["/src", "/src/parent-old", "/src/parent-old/child-old"])
    # The parent looks dirty once its nested repository has moved
    git = FakeGitManager(clean_sequences={"/src/parent-old": [True, False]})
    executor, reporter, output, errors = build_rename_executor(fs, git)

    records = [
        make_record("/src/parent-old", "", "octo/parent", ""),
        make_record("/src/parent-old/child-old", "", "octo/child", ""),
    ]
    run_rename_batch(ExecutionContext(), executor, records, include_owner=False, dry_run=False, require_clean=True)

    assert output.getvalue().splitlines() == [
        "Renamed /src/parent-old/child-old → /src/parent-old/child",
        "Renamed /src/parent-old → /src/parent",
    ]
    assert errors.getvalue() == ""
    assert fs.exists("/src/parent/child")
    assert git.clean_checks == ["/src/parent-old", "/src/parent-old/child-old"]
    assert reporter.counts[Outcome.SUCCESS] == 2

    print("  ✅ Ancestor clean check relaxed")


def test_rename_batch_apply_to_all():
    """Answering "all" once applies to every later rename in the run."""
    print("Testing apply-to-all across a rename batch...")

    fs = FakeFileSystem(directories=["/src", "/src/one-old", "/src/two-old", "/src/three"])
    base = ScriptedPrompter(ConfirmationResult(True, True))
    executor, _, output, _ = build_rename_executor(fs, prompter=CascadingConfirmationPrompter(base))

    records = [
        make_record("/src/one-old", "", "octo/one", ""),
        make_record("/src/two-old", "", "octo/two", ""),
        make_record("/src/three", "", "octo/three", ""),
    ]
    run_rename_batch(ExecutionContext(), executor, records, include_owner=False, dry_run=False, require_clean=False)

    assert len(base.prompts) == 1
    assert output.getvalue().splitlines() == [
        "Renamed /src/one-old → /src/one",
        "SKIP (already named): /src/three",
        "Renamed /src/two-old → /src/two",
    ]

    print("  ✅ Apply-to-all cascades across the batch")


def run_all_tests():
    """Run all executor tests."""
    print("🧪 Running Executor Tests")
    print("-" * 60)

    tests = [
        test_remote_update_then_rerun_is_noop,
        test_remote_update_skips_and_plan,
        test_https_mismatch_plan_and_ssh_filter,
        test_remote_update_prompts,
        test_protocol_convert_filters_on_live_url,
        test_protocol_convert_round_trip,
        test_protocol_convert_errors_and_decline,
        test_rename_dry_run_plans,
        test_rename_validations_and_success,
        test_rename_creates_owner_parent,
        test_case_only_rename_and_rollback,
        test_rename_prompt_decline,
        test_ancestor_path_detection,
        test_prepare_rename_requests_ordering,
        test_rename_batch_relaxes_clean_ancestors,
        test_rename_batch_apply_to_all,
    ]

    passed = 0
    failed = 0

    for test_func in tests:
        try:
            test_func()
            passed += 1
        except Exception as e:
            print(f"  ❌ {test_func.__name__} failed: {e}")
            failed += 1
            import traceback
            traceback.print_exc()

    print("-" * 60)
    print(f"📊 Test Results: {passed} passed, {failed} failed")
    return failed == 0


if __name__ == "__main__":
    success = run_all_tests()
    sys.exit(0 if success else 1)
