"""
Sequential step runner.

``Pipet.run`` visits the declared steps one at a time. Process steps are
spawned with the accumulated environment and the argument list built from
the previous step's output; their stdout is echoed to the host and fed to the
extraction rules of their ``next`` descriptor. A failing process is recorded
and the run moves on; a missing required value stops the run.
"""
import logging
import os
import sys
import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Sequence

from . import process as proc
from .arguments import build_args
from .environment import RunEnvironment, merge_and_validate
from .errors import ConfigurationError, PipetError, StepProcessError
from .extractor import EarlyExit, extract
from .steps import ProcessStep, Step, StepKind, resolve_step

log = logging.getLogger(__name__)


@dataclass
class RunOptions:
    """Run-level defaults; step-level values take precedence."""
    cwd: Optional[str] = None
    bin: Optional[str] = None
    bin_args: Optional[List[str]] = None
    env: Optional[Mapping[str, Any]] = None  # initial environment, defaults to os.environ
    before_run: Optional[Callable[[], Any]] = None
    after_run: Optional[Callable[[], Any]] = None


@dataclass
class StepOutcome:
    """What happened to one step of a run."""
    label: str
    kind: StepKind
    exit_code: Optional[int] = None
    early_exit: Optional[EarlyExit] = None
    error: Optional[PipetError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class StepOutput:
    """Cumulative stdout of one process step and the state derived from it."""

    def __init__(self, step: ProcessStep, env: RunEnvironment):
        self.label = step.label
        self.rules = step.next
        self.env = env
        self.buffer = ""
        self.args: List[str] = []

    def feed(self, chunk: str) -> Optional[EarlyExit]:
        """Append ``chunk`` and re-run extraction on everything seen so far."""
        self.buffer += chunk
        return self._apply(strict=False)

    def settle(self, *, strict: bool) -> List[str]:
        """Final pass once the step is done; ``strict`` enforces required rules."""
        self._apply(strict=strict)
        return self.args

    def _apply(self, *, strict: bool) -> Optional[EarlyExit]:
        # Arguments first; an early exit there skips the environment pass
        found = extract(self.buffer, self.rules.args)
        self.args = build_args(found.values, self.rules.args, self.label, strict=strict, visited=found.visited)
        if found.early_exit:
            return found.early_exit

        found = extract(self.buffer, self.rules.env)
        merge_and_validate(found.values, self.rules.env, self.env, self.label, strict=strict, visited=found.visited)
        return found.early_exit


class Pipet:
    """Runs a list of steps in order, piping each output into the next step."""

    def __init__(self):
        self.env: Optional[RunEnvironment] = None
        self.args: List[str] = []
        self._cancel = threading.Event()
        self._process = None

    def cancel(self) -> None:
        """Stop the current child; process steps that follow fail immediately."""
        self._cancel.set()
        process = self._process
        if process is not None and process.poll() is None:
            process.terminate()

    def run(self, steps: Sequence[Any], options: Optional[RunOptions] = None) -> List[StepOutcome]:
        """
        Run all steps in order.

        Args:
            steps: Process steps, inline steps or bare callables
            options: Run-level defaults and hooks

        Returns:
            One outcome per step, in step order
        """
        options = options or RunOptions()
        if len(steps) < 1:
            raise ConfigurationError("Need at least 1 script to run")

        resolved = [resolve_step(step) for step in steps]
        self.env = RunEnvironment(options.env)
        self.args = []
        self._cancel = threading.Event()

        log.debug(f"Run options: cwd={options.cwd} bin={options.bin} bin_args={options.bin_args}")
        log.info(f"Executing {len(resolved)} steps...")
        try:
            if options.before_run:
                options.before_run()
            results = self._reduce(resolved, options)
        finally:
            if options.after_run:
                options.after_run()

        succeeded = sum(1 for outcome in results if outcome.ok)
        log.info(f"Execution complete: {succeeded}/{len(results)} steps succeeded")
        return results

    def _reduce(self, steps: List[Step], options: RunOptions) -> List[StepOutcome]:
        results: List[StepOutcome] = []
        for step in steps:
            if step.kind is StepKind.PROCESS:
                outcome = self._run_process(step, options)
            else:
                self._run_inline(step, results)
                outcome = StepOutcome(step.label, step.kind)
            results.append(outcome)
        return results

    def _run_inline(self, step: Step, results: List[StepOutcome]) -> None:
        if step.kind is StepKind.CALLBACK:
            step.callback(results)
        elif step.kind is StepKind.INJECT_ENV:
            current = self.env.to_dict()
            decorated = step.decorate(current)
            self.env.replace(current if decorated is None else decorated)
        elif step.kind is StepKind.INJECT_ARGS:
            current = list(self.args)
            decorated = step.decorate(current)
            self.args = [str(arg) for arg in (current if decorated is None else decorated)]

    def _command(self, step: ProcessStep, options: RunOptions, cwd: str) -> List[str]:
        bin_args = step.bin_args if step.bin_args is not None else options.bin_args
        prefix = list(bin_args or [])
        if step.direct:
            return [step.script, *prefix, *self.args]
        binary = step.bin or options.bin or sys.executable
        script = os.path.abspath(os.path.join(cwd, step.script))
        return [binary, *prefix, script, *self.args]

    def _run_process(self, step: ProcessStep, options: RunOptions) -> StepOutcome:
        overrides = step.env_overrides()
        if overrides is not None:
            if step.replace_env:
                self.env.replace(overrides)
            else:
                self.env.merge(overrides)

        cwd = step.cwd or options.cwd or os.getcwd()
        argv = self._command(step, options, cwd)
        output = StepOutput(step, self.env)

        if self._cancel.is_set():
            self.args = output.settle(strict=False)
            return self._failed(step, StepProcessError(f'Run was cancelled before script "{step.label}"', step.label))

        log.info(f"Executing: {step.label}")
        try:
            process = proc.spawn(argv, self.env.to_dict(), cwd)
        except OSError as e:
            self.args = output.settle(strict=False)
            return self._failed(step, StepProcessError(f'Could not start script "{step.label}": {e}', step.label))

        self._process = process
        try:
            early_exit = proc.stream_output(process, output.feed)
            if early_exit is EarlyExit.ABORT:
                proc.terminate(process, background=True)
            elif early_exit is None:
                process.wait()
                process.stdout.close()
        except BaseException:
            proc.terminate(process)
            raise
        finally:
            self._process = None

        exit_code = process.returncode
        if early_exit is None:
            error = None
            if self._cancel.is_set():
                error = StepProcessError(f'Run was cancelled while running script "{step.label}"', step.label, exit_code)
            elif exit_code != 0:
                error = StepProcessError(f'Script "{step.label}" exited with code {exit_code}', step.label, exit_code)
            if error:
                outcome = self._failed(step, error)
                # required rules still apply to whatever the child printed
                self.args = output.settle(strict=bool(output.buffer))
                return outcome
        else:
            log.debug(f"  {step.label}: {early_exit.value} early")

        try:
            self.args = output.settle(strict=True)
        except PipetError:
            # child may still be running after continue_early
            proc.terminate(process)
            raise
        if step.next.decorate_env:
            decorated = step.next.decorate_env(self.env.to_dict())
            if decorated:
                self.env.merge(decorated)

        log.info(f"✓ Success: {step.label}")
        return StepOutcome(step.label, step.kind, exit_code=exit_code, early_exit=early_exit)

    def _failed(self, step: ProcessStep, error: StepProcessError) -> StepOutcome:
        log.error(f"✗ Failed: {step.label} ({error})")
        return StepOutcome(step.label, step.kind, exit_code=error.exit_code, error=error)
