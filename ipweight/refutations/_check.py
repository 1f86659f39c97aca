from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class Assumption:
    """
    A single modelling assumption required for the IPW estimate to be causal.

    ``IPWResult.assumptions`` returns a list of these. Each assumption has a
    human-readable name and a ``testable`` flag indicating whether it can be
    checked in the data or must be argued on substantive grounds.
    """

    name: str
    """Human-readable description of the assumption."""

    testable: bool
    """``True`` if the assumption can be checked in the data."""

    def fmt_tag(self) -> str:
        """Fixed-width bracketed testability label for summary output."""
        return "[  testable  ]" if self.testable else "[ untestable ]"


class RefutationCheck:
    """
    Outcome of one refutation check.

    ``statistic`` is the number the check compared, e.g. the placebo ATE, and
    ``threshold`` the largest value that still passes.
    Both are ``None`` when re-estimation failed.
    """

    def __init__(
        self,
        name: str,
        passed: bool,
        detail: str,
        statistic: float | None = None,
        threshold: float | None = None,
    ) -> None:
        self.name = name
        self.passed = passed
        self.detail = detail
        self.statistic = statistic
        self.threshold = threshold

    @property
    def status(self) -> str:
        return "PASS" if self.passed else "FAIL"

    def __repr__(self) -> str:
        return f"RefutationCheck({self.status!r}, {self.name!r})"


class RefutationReport:
    """
    Base class for refutation reports.

    Subclasses supply ``_header_lines()``. The report is a table of checks
    (``to_frame()``); ``summary()`` renders that table as text.
    """

    columns = ["name", "passed", "statistic", "threshold", "detail"]

    def __init__(
        self,
        checks: list[RefutationCheck],
        treatment: str,
        outcome: str,
    ) -> None:
        self._checks = checks
        self._treatment = treatment
        self._outcome = outcome

    def _header_lines(self) -> list[str]:
        raise NotImplementedError

    @property
    def checks(self) -> list[RefutationCheck]:
        """All checks, in the order they were run."""
        return list(self._checks)

    @property
    def passed(self) -> bool:
        """``True`` if every check passed."""
        return all(c.passed for c in self._checks)

    @property
    def failed_checks(self) -> list[RefutationCheck]:
        """Only the checks that did not pass."""
        return [c for c in self._checks if not c.passed]

    def to_frame(self) -> pd.DataFrame:
        """
        One row per check, in run order.

        ``statistic`` and ``threshold`` are NaN for a check whose
        re-estimation failed.
        """
        rows = [
            (
                c.name,
                bool(c.passed),
                np.nan if c.statistic is None else float(c.statistic),
                np.nan if c.threshold is None else float(c.threshold),
                c.detail,
            )
            for c in self._checks
        ]
        return pd.DataFrame(rows, columns=self.columns)

    def summary(self) -> str:
        """Formatted report with one line per check and an overall verdict."""
        table = self.to_frame()
        lines = ["", *self._header_lines(), "─" * 50]
        for row in table.itertuples(index=False):
            status = "PASS" if row.passed else "FAIL"
            lines.append(f"  [{status}]  {row.name}: {row.detail}")
        lines.append("")
        n_failed = len(table) - int(table["passed"].sum())
        if n_failed == 0:
            lines.append("  All checks passed.")
        else:
            lines.append(f"  {n_failed} check(s) failed, see above.")
        lines.append("")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return self.summary()
