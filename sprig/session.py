"""
[FILE SUMMARY]
context:
  INTENT:
    purpose: >
      Runs one interactive coding conversation: sends the user's request with the current
      file context, streams the reply to the terminal while it arrives, asks the model to
      continue or to retry when its changes are incomplete or do not apply, and carries out
      the follow-up commands (save, copy, commit, context edits).

  STRUCTURAL:
    responsibility: >
      Wires client.stream_text -> ChunkAccumulator -> adapter.convert_stream -> BlockScanner
      -> Renderer for every response, owns the append-only chat history, and is the single
      place where provider, file and git errors are reported to the user.
    boundaries:
      owns:
        - Chat history and context files for the session
        - The continuation and apply-retry loops
        - Follow-up command dispatch and single-letter abbreviations
        - Documentation, unit-test and review tasks
      does_not_own:
        - Vendor wire formats (adapters.py)
        - Block detection and parsing (scanner.py, blocks.py)
        - Patch semantics (patch.py)
    entrypoints:
      - ChatSession.submit
      - ChatSession.handle_command
      - ChatSession.generate_docs
      - ChatSession.generate_unit_tests
      - ChatSession.review
      - generate_commit
[/FILE SUMMARY]
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

import pyperclip

from .blocks import extract_diff_blocks
from .chunks import ChunkAccumulator
from .client import GPTClient, describe_http_error
from .config import Settings
from .context import collect_context_files, estimate_tokens, filter_paths, reload_context_files, total_tokens
from .errors import ProviderHTTPError, RequestInProgressError, SprigError, StreamCancelled
from .gitops import changed_files, commit_staged, diff_against, require_repo, stage_changes, staged_diff
from .models import ChatMessage, DiffBlock, GPTRequest, Malformed, Parsed, consumed_length
from .patch import PatchOutcome, apply_diff_blocks, changed_paths, check_blocks_applicability
from .prompts import (
    CONTINUE_PROMPT,
    DONE_MARKER,
    build_codegen_prompt,
    build_commit_message_prompt,
    build_couldnt_apply_prompt,
    build_docs_request,
    build_request_prompt,
    build_review_prompt,
    build_unit_tests_request,
    clean_commit_message,
)
from .render import Renderer
from .scanner import BlockScanner

log = logging.getLogger(__name__)

SPECIAL_COMMANDS = [
    "save",
    "commit",
    "copy",
    "add <file-path>",
    "rm <pattern>",
    "ls <pattern>",
    "help",
    "exit",
    "review",
]

FALLBACK_COMMIT_MESSAGE = "Apply sprig changes"


def expand_abbreviation(command: str) -> str:
    if len(command) != 1:
        return command
    match = next(filter(lambda c: c.startswith(command), SPECIAL_COMMANDS), None)
    return match.split(" ")[0] if match else command


def generate_commit(client: GPTClient, base_dir: Path, new_files: list[Path] | None = None) -> tuple[str, str] | None:
    """Stage pending changes, ask the model for a message and commit.

    Returns (sha, message), or None when there is nothing to commit.
    """
    repo = require_repo(base_dir)
    stage_changes(repo, new_files)
    diff = staged_diff(repo)
    if not diff.strip():
        return None

    text = client.generate_text(GPTRequest(prompt=build_commit_message_prompt(diff)))
    message = clean_commit_message(text) or FALLBACK_COMMIT_MESSAGE
    return (commit_staged(repo, message), message)


class ChatSession:
    def __init__(
        self,
        settings: Settings,
        client: GPTClient,
        renderer: Renderer,
        base_dir: Path | None = None,
        copy_to_clipboard: Callable[[str], None] = pyperclip.copy,
    ):
        self.settings = settings
        self.client = client
        self.renderer = renderer
        self.base_dir = base_dir or Path.cwd()
        self.copy_to_clipboard = copy_to_clipboard

        self.history: list[ChatMessage] = []
        self.context_files = collect_context_files(list(settings.files), self.base_dir)
        self.is_processing = False
        self.pending_blocks: list[DiffBlock] = []
        self.saved_paths: list[Path] = []
        self.retry_count = 0

    # -- conversation -------------------------------------------------------

    def conversation(self) -> list[ChatMessage]:
        return [ChatMessage("system", build_codegen_prompt(self.context_files))] + self.history

    def refresh_context(self) -> None:
        self.context_files = reload_context_files(self.context_files, self.base_dir)

    def submit(self, prompt: str) -> bool:
        return self.run_guarded(lambda: self.ask(build_request_prompt(prompt)))

    def run_guarded(self, task: Callable[[], object]) -> bool:
        """Run one model task, reporting its errors. Returns True when it completed."""
        if self.is_processing:
            raise RequestInProgressError("Please wait for the current request to complete.")

        self.is_processing = True
        try:
            task()
            return True
        except StreamCancelled:
            self.renderer.warning("\nResponse cancelled.")
        except ProviderHTTPError as e:
            self.renderer.error(
                f"\nError ({e.status}) while submitting the prompt: {describe_http_error(e.status)}\n{e.message}"
            )
        except (SprigError, OSError) as e:
            self.renderer.error(f"\n{e}")
        finally:
            self.is_processing = False
        return False

    def ask(self, message: str) -> list[DiffBlock]:
        self.pending_blocks = []
        self.refresh_context()
        self.history.append(ChatMessage("user", message))

        response = self.run_until_done()
        blocks = extract_diff_blocks(response)
        self.retry_count = 0
        while blocks:
            can_apply, summary = check_blocks_applicability(blocks, self.base_dir)
            if can_apply:
                break
            if self.retry_count >= self.settings.max_apply_retries:
                self.renderer.error(
                    f"Failed to generate changes that apply cleanly after {self.retry_count} attempts. "
                    "Review the changes manually and try again."
                )
                break

            self.retry_count += 1
            self.renderer.warning(
                f"\n{summary}\n\nSome of the changes could not be applied. "
                f"Retrying (attempt {self.retry_count}/{self.settings.max_apply_retries})..."
            )
            self.history.append(ChatMessage("user", build_couldnt_apply_prompt(summary)))
            response = self.run_until_done()
            blocks = extract_diff_blocks(response)

        self.pending_blocks = blocks
        if blocks and self.settings.auto_accept:
            self.save()
        return blocks

    def run_until_done(self) -> str:
        parts: list[str] = []
        continuations = 0
        while True:
            response = self.stream_response()
            self.history.append(ChatMessage("assistant", response))
            parts.append(response)

            if not response.strip() or DONE_MARKER in response:
                break
            if continuations >= self.settings.max_continuations:
                log.warning("Response still incomplete after %d continuations", continuations)
                break

            continuations += 1
            log.debug("No done marker, asking the model to continue (%d)", continuations)
            self.history.append(ChatMessage("user", CONTINUE_PROMPT))
        return "".join(parts)

    def stream_response(self) -> str:
        adapter = self.client.adapter
        scanner = BlockScanner()
        parts: list[str] = []

        def emit(text: str) -> None:
            parts.append(text)
            for event in scanner.feed(text):
                self.renderer.dispatch(event)

        def on_content(_: str) -> None:
            while True:
                result = adapter.convert_stream(accumulator.buffer)
                if isinstance(result, Parsed):
                    emit(result.value.text)
                elif isinstance(result, Malformed):
                    log.warning("Discarding unreadable stream data: %s", result.reason)

                consumed = consumed_length(result)
                if consumed <= 0:
                    return
                accumulator.clear_buffer(consumed)

        accumulator = ChunkAccumulator(on_content)
        stream = self.client.stream_text(GPTRequest(messages=self.conversation()))
        try:
            for chunk in stream:
                accumulator.add_chunk(chunk)
        except KeyboardInterrupt as e:
            stream.close()
            self.renderer.end_code()
            raise StreamCancelled("Response cancelled") from e

        if accumulator.buffer.strip():
            log.debug("Ignoring %d unconsumed bytes at end of stream", len(accumulator.buffer))
        for event in scanner.finish():
            self.renderer.dispatch(event)
        self.renderer.info("")
        return "".join(parts)

    # -- generation tasks ---------------------------------------------------

    def working_changes(self, base: str) -> tuple[Path, str] | None:
        """The repository root and the working-tree diff against `base`, or None after reporting why not."""
        try:
            repo = require_repo(self.base_dir)
            diff = diff_against(repo, base)
        except SprigError as e:
            self.renderer.error(str(e))
            return None
        return (Path(repo.working_tree_dir or self.base_dir), diff)

    def generate_docs(self, extra: str = "") -> bool:
        if not self.context_files:
            self.renderer.warning("Add the files to document to the context first.")
            return False
        return self.run_guarded(lambda: self.ask(build_docs_request(list(self.context_files), extra)))

    def generate_unit_tests(self, base: str = "HEAD") -> bool:
        """Write tests for the context files, or for the files changed since `base` when there are none."""
        targets = list(self.context_files)
        diff = ""
        if not targets:
            changes = self.working_changes(base)
            if changes is None:
                return False
            root, diff = changes
            paths = [str(root / p) for p in changed_files(diff)]
            self.context_files = collect_context_files(paths, self.base_dir, into=self.context_files)
            targets = list(self.context_files)

        if not targets:
            self.renderer.warning("No files or changes to write tests for.")
            return False
        return self.run_guarded(lambda: self.ask(build_unit_tests_request(targets, diff)))

    def review(self, base: str = "HEAD") -> bool:
        changes = self.working_changes(base)
        if changes is None:
            return False
        _, diff = changes
        if not diff.strip():
            self.renderer.warning("No changes to review.")
            return False

        def task() -> None:
            self.pending_blocks = []
            self.refresh_context()
            self.history.append(ChatMessage("user", build_review_prompt(diff)))
            self.run_until_done()

        return self.run_guarded(task)

    # -- follow-up commands -------------------------------------------------

    def handle_command(self, line: str) -> bool:
        """Run one line of REPL input. Returns False when the session should end."""
        command = expand_abbreviation(line.strip())
        name, _, arg = command.partition(" ")
        arg = arg.strip()

        if command == "exit":
            return False
        if command == "help":
            self.show_help()
        elif command == "save":
            self.save()
        elif command == "copy":
            self.copy()
        elif command == "commit":
            self.commit()
        elif command == "review":
            self.review()
        elif name == "add" and arg:
            self.add(arg)
        elif name == "rm":
            self.remove(arg or "*")
        elif name == "ls":
            self.list_files(arg or "*")
        else:
            self.submit(command)
        return True

    def show_help(self) -> None:
        self.renderer.info("\nAvailable commands:")
        for cmd in SPECIAL_COMMANDS:
            self.renderer.info(f"  - {cmd}")
        self.renderer.info("\nAny other input is sent to the model as a request.\n")

    def save(self) -> list[PatchOutcome]:
        if not self.pending_blocks:
            self.renderer.warning("No changes found to save in the last response.")
            return []

        outcomes = apply_diff_blocks(self.pending_blocks, self.base_dir, preview=self.renderer.change_preview)
        for outcome in outcomes:
            detail = f" ({outcome.detail})" if outcome.detail else ""
            message = f"{outcome.block.file_path}: {outcome.status}{detail}"
            if outcome.ok:
                self.renderer.success(message)
            else:
                self.renderer.warning(message)

        self.saved_paths.extend(changed_paths(outcomes, self.base_dir))
        self.pending_blocks = []
        return outcomes

    def copy(self) -> None:
        last = next(filter(lambda m: m.role == "assistant", reversed(self.history)), None)
        if last is None:
            self.renderer.warning("No response to copy.")
            return
        try:
            self.copy_to_clipboard(last.content)
        except pyperclip.PyperclipException as e:
            self.renderer.error(f"Could not copy to clipboard: {e}")
            return
        self.renderer.success("Last response copied to clipboard.")

    def commit(self) -> None:
        try:
            with self.renderer.console.status("Generating commit message...", spinner="dots"):
                result = generate_commit(self.client, self.base_dir, self.saved_paths)
        except ProviderHTTPError as e:
            self.renderer.error(f"Error ({e.status}): {describe_http_error(e.status)}\n{e.message}")
            return
        except SprigError as e:
            self.renderer.error(str(e))
            return

        if result is None:
            self.renderer.warning("No changes to commit.")
            return
        sha, message = result
        self.saved_paths = []
        self.renderer.success(f"Committed {sha[:8]}: {message.splitlines()[0]}")

    def add(self, value: str) -> None:
        before = set(self.context_files)
        self.context_files = collect_context_files([value], self.base_dir, into=self.context_files)
        added = [p for p in self.context_files if p not in before]
        if not added:
            self.renderer.warning(f"No readable files found matching {value}.")
            return
        for path in added:
            self.renderer.info(f"Added {path} to the context (~{estimate_tokens(self.context_files[path]):,} tokens)")
        self.renderer.info(f"Total tokens in context now: {total_tokens(self.context_files):,}")

    def remove(self, pattern: str) -> None:
        matched = filter_paths(list(self.context_files), pattern)
        if not matched:
            self.renderer.warning(f"No files in the context match {pattern}.")
            return
        for path in matched:
            del self.context_files[path]
            self.renderer.info(f"Removed {path} from the context")

    def list_files(self, pattern: str) -> None:
        matched = filter_paths(list(self.context_files), pattern)
        if not matched:
            self.renderer.info("No files currently in context.")
            return
        for path in matched:
            self.renderer.info(f"{path} (~{estimate_tokens(self.context_files[path]):,} tokens)")
        self.renderer.info(f"\nTotal files: {len(matched)}")
        self.renderer.info(f"Total estimated tokens: {sum(estimate_tokens(self.context_files[p]) for p in matched):,}")
