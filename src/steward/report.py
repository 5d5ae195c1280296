"""Run summary for a batch of repository pipelines."""

from typing import List, Sequence

from steward.models import PipelineResult


def format_result(result: PipelineResult) -> str:
    """Render one repository's result as a single summary line."""
    status = "PASS" if result.success else "FAIL"
    line = f"{status} {result.repo.full_name} ({result.elapsed_seconds:.1f}s)"
    if result.outcomes:
        counts = {}
        for outcome in result.outcomes:
            counts[outcome.action.value] = counts.get(outcome.action.value, 0) + 1
        line += " " + ", ".join(f"{action}={count}" for action, count in sorted(counts.items()))
    if not result.success:
        line += f" stage={result.stage} error={result.error}"
        if result.unattempted:
            line += f" unattempted={len(result.unattempted)}"
    return line


def format_summary(results: Sequence[PipelineResult], total_elapsed: float) -> List[str]:
    """Render the pass/fail summary of a run, one line per repository.

    The last line totals the run.
    """
    lines = [format_result(result) for result in results]
    failed = sum(1 for result in results if not result.success)
    lines.append(
        f"{len(results) - failed} passed, {failed} failed in {total_elapsed:.1f}s"
    )
    return lines


def exit_code(results: Sequence[PipelineResult]) -> int:
    """0 when every repository succeeded, 1 otherwise."""
    return 0 if all(result.success for result in results) else 1
