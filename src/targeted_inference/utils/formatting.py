"""Summary formatting utilities for statsmodels-style output."""

from datetime import datetime
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy import stats
from tabulate import tabulate


def compute_z_and_pvalue(estimate: float, se: float) -> Tuple[float, float]:
    """
    Compute z-statistic and two-sided p-value.

    Args:
        estimate: Point estimate
        se: Standard error

    Returns:
        (z_stat, p_value) tuple
    """
    if se <= 0 or np.isnan(se):
        return np.nan, np.nan

    z_stat = estimate / se
    p_value = 2 * stats.norm.sf(abs(z_stat))

    return z_stat, p_value


def format_pvalue(p: float) -> str:
    """
    Format p-value for display.

    Args:
        p: p-value

    Returns:
        Formatted string (e.g., "0.042", "<0.001")
    """
    if np.isnan(p):
        return "nan"
    if p < 0.001:
        return "<0.001"
    return f"{p:.3f}"


def format_summary_header(
    title: str,
    estimand: Optional[str] = None,
    n_obs: Optional[int] = None,
    estimator: Optional[str] = None,
    width: int = 78,
) -> str:
    """
    Format statsmodels-style header block.

    Args:
        title: Main title (e.g., "TMLE Results")
        estimand: String representation of the estimand
        n_obs: Number of observations the influence curve was evaluated on
        estimator: Estimator name ("TMLE", "OSE", ...)
        width: Total width of output

    Returns:
        Formatted header string
    """
    sep = "=" * width
    lines = [sep, f"{title:^{width}}", sep]

    now = datetime.now()
    fields = []
    if estimator is not None:
        fields.append(("Estimator:", estimator))
    if n_obs is not None:
        fields.append(("No. Observations:", str(n_obs)))
    fields.append(("Date:", now.strftime("%a, %d %b %Y")))
    fields.append(("Time:", now.strftime("%H:%M:%S")))

    half_width = width // 2
    for i in range(0, len(fields), 2):
        left = fields[i]
        line = f"{left[0]:<18}{left[1]:<{half_width - 18}}"
        if i + 1 < len(fields):
            right = fields[i + 1]
            line += f"{right[0]:<18}{right[1]}"
        lines.append(line.rstrip())

    if estimand is not None:
        lines.append("-" * width)
        lines.extend(estimand.splitlines())

    lines.append(sep)
    return "\n".join(lines)


def format_estimate_table(
    names: Sequence[str],
    estimates: Sequence[float],
    ses: Sequence[float],
    ci_lower: Sequence[float],
    ci_upper: Sequence[float],
    alpha: float = 0.05,
) -> str:
    """
    Format one row per estimate: coef, std err, z, p-value and CI.

    Args:
        names: Row labels
        estimates: Point estimates
        ses: Standard errors
        ci_lower: Lower confidence interval bounds
        ci_upper: Upper confidence interval bounds
        alpha: Significance level used for the intervals

    Returns:
        Formatted table string
    """
    ci_level = int(round((1 - alpha) * 100))
    rows: List[list] = []
    for name, est, se, lo, hi in zip(names, estimates, ses, ci_lower, ci_upper):
        z_stat, p_value = compute_z_and_pvalue(est, se)
        rows.append([
            name,
            f"{est:.4f}",
            f"{se:.4f}",
            f"{z_stat:.3f}",
            format_pvalue(p_value),
            f"[{lo:.4f}, {hi:.4f}]",
        ])
    headers = ["", "coef", "std err", "z", "P>|z|", f"[{ci_level}% CI]"]
    return tabulate(rows, headers=headers, tablefmt="simple")


def format_short_repr(
    class_name: str,
    estimate: float,
    se: float,
    ci_lower: float,
    ci_upper: float,
) -> str:
    """
    Format short __repr__ string.

    Args:
        class_name: Name of result class
        estimate: Point estimate
        se: Standard error
        ci_lower: Lower CI bound
        ci_upper: Upper CI bound

    Returns:
        Short repr string
    """
    return (
        f"<{class_name}: estimate={estimate:.4f}, se={se:.4f}, "
        f"95% CI=[{ci_lower:.4f}, {ci_upper:.4f}]>"
    )
